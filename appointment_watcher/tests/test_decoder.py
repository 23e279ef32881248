import base64
import unittest
from unittest.mock import patch

from appointment_watcher.decoder import (
    BODY_UNAVAILABLE,
    decode_message,
    decode_part,
    decode_quoted_printable,
    normalize_text,
)
from appointment_watcher.models import MessagePart

class TestDecoder(unittest.TestCase):
    """Test cases for message body decoding"""

    def test_soft_line_breaks_removed(self):
        """Soft line breaks join the wrapped line"""
        raw = b"Ich kann am 5.5. nicht kom=\r\nmen, bitte stor=\nnieren."
        text = decode_part(raw, 'quoted-printable', 'utf-8')
        self.assertEqual(text, "Ich kann am 5.5. nicht kommen, bitte stornieren.")

    def test_escapes_decoded(self):
        """=20, =0D=0A and generic =XX escapes become characters"""
        raw = b"Guten=20Tag,=0D=0AMit freundlichen Gr=C3=BC=C3=9Fen =3D Ende"
        text = decode_part(raw, 'quoted-printable', 'utf-8')
        self.assertEqual(text, "Guten Tag, Mit freundlichen Grüßen = Ende")

    def test_accented_sequences(self):
        """Known accented letters are mapped, in either case of hex digits"""
        self.assertEqual(decode_quoted_printable("R=C3=BCckfrage"), "Rückfrage")
        self.assertEqual(decode_quoted_printable("=C3=84rzte =c3=b6ffnen"), "Ärzte öffnen")
        self.assertEqual(decode_quoted_printable("caf=C3=A9"), "café")

    def test_unknown_multibyte_sequence(self):
        """Other UTF-8 runs decode through the generic path"""
        self.assertEqual(decode_quoted_printable("=E2=82=AC 20"), "€ 20")

    def test_latin1_fallback(self):
        """Escapes that are not valid UTF-8 fall back to latin-1"""
        self.assertEqual(decode_quoted_printable("Gr=FC=DFe"), "Grüße")

    def test_whitespace_collapsed(self):
        self.assertEqual(normalize_text("  Hallo \r\n\r\n  Welt\t! "), "Hallo Welt !")

    def test_idempotent_on_decoded_text(self):
        """Decoding already-decoded text changes nothing"""
        raw = "Termin=20am=0D=0AMontag f=C3=BCr Herrn M=C3=BCller, bitte abs=\r\nagen."
        once = normalize_text(decode_quoted_printable(raw))
        twice = normalize_text(decode_quoted_printable(once))
        self.assertEqual(once, twice)
        self.assertEqual(once, "Termin am Montag für Herrn Müller, bitte absagen.")

    def test_base64_part(self):
        data = base64.b64encode("Ich möchte den Termin absagen.\n".encode('utf-8'))
        self.assertEqual(decode_part(data, 'base64', 'utf-8'), "Ich möchte den Termin absagen.")

    def test_plain_part_not_qp_decoded(self):
        """Parts without quoted-printable encoding keep literal '=' sequences"""
        self.assertEqual(decode_part(b"a =20 b", '7bit', 'us-ascii'), "a =20 b")

    def test_declared_charset(self):
        self.assertEqual(decode_part("Grüße".encode('latin-1'), '8bit', 'iso-8859-1'), "Grüße")

    def test_quoted_printable_uses_declared_charset(self):
        """Escapes outside the accented map follow the part's charset"""
        raw = b"Preis 5 =80, Gr=FC=DFe"
        self.assertEqual(decode_part(raw, 'quoted-printable', 'windows-1252'), "Preis 5 €, Grüße")

    def test_prefers_text_part(self):
        parts = {
            '1': MessagePart(data=b"<p>html</p>", content_type='text/html'),
            'TEXT': MessagePart(data=b"from TEXT"),
        }
        self.assertEqual(decode_message(parts), "from TEXT")

    def test_prefers_plain_over_html(self):
        parts = {
            '1': MessagePart(data=b"<p>html</p>", content_type='text/html'),
            '2': MessagePart(data=b"plain body", content_type='text/plain'),
        }
        self.assertEqual(decode_message(parts), "plain body")

    def test_falls_back_to_other_text_part(self):
        """Without a plain part the first other text part is used, never a binary one"""
        parts = {
            '1': MessagePart(data=b"\x89PNG", content_type='image/png'),
            '2': MessagePart(data=b"<p>Absage</p>", content_type='text/html'),
        }
        self.assertEqual(decode_message(parts), "<p>Absage</p>")

    def test_placeholder_without_text_part(self):
        """Missing or non-text parts give the placeholder instead of failing"""
        self.assertEqual(decode_message({}), BODY_UNAVAILABLE)
        self.assertEqual(decode_message(None), BODY_UNAVAILABLE)
        parts = {'1': MessagePart(data=b"\x89PNG", content_type='image/png')}
        self.assertEqual(decode_message(parts), BODY_UNAVAILABLE)
        parts = {'1': MessagePart(data=b"   \r\n ", content_type='text/plain')}
        self.assertEqual(decode_message(parts), BODY_UNAVAILABLE)

    def test_never_raises(self):
        """Unexpected errors while decoding degrade to the placeholder"""
        parts = {'1': MessagePart(data=b"text")}
        with patch('appointment_watcher.decoder.decode_part', side_effect=RuntimeError("boom")):
            self.assertEqual(decode_message(parts), BODY_UNAVAILABLE)

if __name__ == '__main__':
    unittest.main()
