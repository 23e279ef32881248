from .analyzer import EmailAnalyzer, CANCELLATION_KEYWORDS, is_cancellation_candidate, strip_code_fences

__all__ = [
    'EmailAnalyzer',
    'CANCELLATION_KEYWORDS',
    'is_cancellation_candidate',
    'strip_code_fences'
]
