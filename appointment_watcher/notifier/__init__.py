from .sender import EmailNotifier, format_plain, format_html

__all__ = [
    'EmailNotifier',
    'format_plain',
    'format_html'
]
