from ..models import InboundEmail

SYSTEM_PROMPT = (
    "You are a helpful assistant that analyzes emails to extract appointment "
    "cancellation information. Always respond with clean JSON without markdown formatting."
)

def get_extraction_prompt(email: InboundEmail) -> str:
    return f"""Analysieren Sie die folgende E-Mail und bestimmen Sie, ob sie mit einer Terminabsage in einer medizinischen Praxis zusammenhängt.
Wenn es sich um eine Terminabsage handelt, extrahieren Sie bitte die folgenden Informationen:
- E-Mail (bereits vorhanden)
- Termin-Datum (falls verfügbar)
- Termin-Uhrzeit (falls verfügbar)
- Vollständiger Name des Patienten (falls verfügbar)
- Geburtsdatum des Patienten (falls verfügbar)
- Telefonnummer (falls verfügbar)

Hier ist die E-Mail:
FROM: {email.sender}
SUBJECT: {email.subject}
MESSAGE: {email.body}

Antworten Sie mit genau einem JSON-Objekt mit folgender Struktur:
{{
    "email": "E-Mail des Patienten",
    "date": "Termindatum oder leerer String",
    "time": "Terminzeit oder leerer String",
    "fullName": "Name des Patienten oder leerer String",
    "birthDate": "Geburtsdatum oder leerer String",
    "phone": "Telefonnummer oder leerer String",
    "isCancellation": true/false
}}

Nur das JSON-Objekt ohne zusätzliche Formatierung. WICHTIG: Kein Markdown, keine Backticks, nur das reine JSON."""
