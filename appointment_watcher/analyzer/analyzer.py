import json
import re
from typing import Any, Dict, Optional

from anthropic import Anthropic, APIError, APITimeoutError

from ..config import config
from ..errors import AnalysisError
from ..logger import get_logger
from ..models import AnalysisResult, CancellationRecord, FailureKind, InboundEmail
from ..timeouts import OperationTimeout, run_with_timeout
from .prompts import SYSTEM_PROMPT, get_extraction_prompt

logger = get_logger(__name__)

CANCELLATION_KEYWORDS = (
    'absage',
    'absagen',
    'abgesagt',
    'stornieren',
    'storniert',
    'cancel',
    'kann nicht kommen',
)

# JSON field name -> CancellationRecord attribute
OPTIONAL_FIELDS = {
    'email': 'email',
    'date': 'date',
    'time': 'time',
    'fullName': 'full_name',
    'birthDate': 'birth_date',
    'phone': 'phone',
}

_FENCE = re.compile(r'```(?:json)?\s*', re.IGNORECASE)


def is_cancellation_candidate(subject: str, body: str) -> bool:
    """Case-insensitive keyword check on subject and body."""
    subject = (subject or '').lower()
    body = (body or '').lower()
    return any(word in subject or word in body for word in CANCELLATION_KEYWORDS)


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences and stray backticks around a JSON payload."""
    text = _FENCE.sub('', text.strip())
    return text.strip().strip('`').strip()


class EmailAnalyzer:
    """Classifies emails as appointment cancellations using Claude and extracts appointment data.

    The keyword pre-filter decides whether the model is consulted at all.
    Once it is, the model's ``isCancellation`` flag is authoritative. With
    ``prefilter=False`` every message goes to the model.
    """

    def __init__(self, claude_client: Optional[Anthropic] = None, api_key: Optional[str] = None,
                 model: Optional[str] = None, request_timeout: Optional[float] = None,
                 analysis_timeout: Optional[float] = None, prefilter: Optional[bool] = None):
        """Initialize the analyzer.

        Args:
            claude_client: Pre-built client, mainly for tests
            api_key: Anthropic API key, defaults to configuration
            model: Claude model name, defaults to configuration
            request_timeout: Budget for the HTTP request itself
            analysis_timeout: Budget for the whole analysis step
            prefilter: Whether the keyword pre-filter gates the model call
        """
        settings = config.claude
        self.api_key = api_key if api_key is not None else settings.api_key
        self.model = model or settings.model
        self.request_timeout = request_timeout if request_timeout is not None else settings.request_timeout
        self.analysis_timeout = analysis_timeout if analysis_timeout is not None else settings.analysis_timeout
        self.prefilter = settings.prefilter if prefilter is None else prefilter
        self._credits_exhausted = False

        if claude_client:
            self.client = claude_client
        elif self.api_key:
            self.client = Anthropic(api_key=self.api_key, timeout=self.request_timeout, max_retries=0)
        else:
            self.client = None

    def reset(self) -> None:
        """Forget the credits-exhausted state so the next analysis calls the API again."""
        self._credits_exhausted = False

    def analyze_email(self, email: InboundEmail) -> AnalysisResult:
        """Decide whether an email is a cancellation and extract its data.

        Never raises. At most one request is sent to the API per call.
        """
        if self.prefilter and not is_cancellation_candidate(email.subject, email.body):
            logger.info(f"Message {email.message_id} does not appear to be a cancellation")
            return AnalysisResult.not_cancellation()

        if self.client is None:
            logger.error("ANTHROPIC_API_KEY not set, skipping analysis")
            return AnalysisResult.failed(FailureKind.NOT_CONFIGURED, "ANTHROPIC_API_KEY not set")

        if self._credits_exhausted:
            logger.error("Credits already exhausted, failing fast")
            return AnalysisResult.failed(FailureKind.SERVICE_ERROR, "Claude API credits are exhausted")

        logger.info(f"Analyzing message {email.message_id} with Claude")
        try:
            return run_with_timeout(self._analyze, self.analysis_timeout, email)
        except OperationTimeout as e:
            logger.error(f"Analysis of message {email.message_id} timed out: {e}")
            return AnalysisResult.failed(FailureKind.TIMEOUT, str(e))
        except AnalysisError as e:
            logger.error(f"Analysis of message {email.message_id} failed ({e.kind}): {e}")
            return AnalysisResult.failed(e.kind, str(e))
        except Exception as e:
            logger.error(f"Error analyzing message {email.message_id}: {e}")
            return AnalysisResult.failed(FailureKind.SERVICE_ERROR, str(e))

    def _analyze(self, email: InboundEmail) -> AnalysisResult:
        response_text = self._request(email)
        data = self._parse_response(response_text)
        return self._build_result(email, data)

    def _request(self, email: InboundEmail) -> str:
        """Send the extraction prompt and return the raw response text."""
        prompt = get_extraction_prompt(email)
        logger.debug(f"Sending extraction prompt: {prompt}")

        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=1000,
                temperature=0.2,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                timeout=self.request_timeout
            )
        except APITimeoutError as e:
            raise AnalysisError(FailureKind.TIMEOUT, f"Claude request timed out after {self.request_timeout}s") from e
        except APIError as e:
            error_message = str(e)
            if 'credit balance is too low' in error_message.lower():
                self._credits_exhausted = True
                logger.error("Claude API credits exhausted. Please recharge your account.")
            raise AnalysisError(FailureKind.SERVICE_ERROR, f"Claude API error: {error_message}") from e

        try:
            response_text = response.content[0].text if isinstance(response.content, list) else response.content
        except (IndexError, AttributeError) as e:
            raise AnalysisError(FailureKind.MALFORMED_RESPONSE, "Claude response has no text content") from e

        logger.debug(f"Raw Claude response: {response_text}")
        return response_text or ''

    def _parse_response(self, response_text: str) -> Any:
        cleaned = strip_code_fences(response_text)
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.debug(f"Unparseable response: {response_text}")
            raise AnalysisError(FailureKind.MALFORMED_RESPONSE, f"Failed to parse JSON response: {e}") from e

    def _build_result(self, email: InboundEmail, data: Any) -> AnalysisResult:
        """Validate the parsed response and turn it into an AnalysisResult."""
        if not isinstance(data, dict):
            raise AnalysisError(FailureKind.SCHEMA_VIOLATION, "Response is not a JSON object")

        flag = data.get('isCancellation')
        if not isinstance(flag, bool):
            raise AnalysisError(
                FailureKind.SCHEMA_VIOLATION,
                f"isCancellation must be a boolean, got {flag!r}"
            )

        values: Dict[str, Optional[str]] = {}
        for key, attribute in OPTIONAL_FIELDS.items():
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise AnalysisError(FailureKind.SCHEMA_VIOLATION, f"{key} must be a string, got {value!r}")
            values[attribute] = value

        if not flag:
            logger.info(f"Message {email.message_id} is not a cancellation according to Claude")
            return AnalysisResult.not_cancellation()

        values['email'] = values['email'] or email.sender
        record = CancellationRecord(is_cancellation=True, message=email.body, **values)
        logger.info(f"Message {email.message_id} is a cancellation from {record.email}")
        return AnalysisResult.cancellation(record)
