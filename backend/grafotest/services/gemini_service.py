"""
Grafotest API — Google Gemini Service Implementation
=====================================================

What:  Concrete LLM service sending a handwriting image + prompt to Gemini.
How:   Inline image data and prompt go to generate_content_async; the text
       parts of the first candidate are returned as fragments. Transient
       transport errors are retried with tenacity, and a circuit breaker
       stops calling Gemini after repeated failures.
Who:   Instantiated once at import; called by AnalysisService.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient errors
    2. Circuit breaker to protect against cascade failures when Gemini is down
    3. Per-call response timeout
    4. Duration logging for every call

Configuration (API key, model, timeout, retry and breaker thresholds) is
passed to the constructor; this module reads `settings` only to build the
shared singleton at the bottom.
"""

import base64
import binascii
import logging
import re
import time
import uuid
from typing import Any, Callable, List, Optional, Tuple

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from grafotest.config import settings
from grafotest.exceptions import CircuitBreakerOpenError, LLMServiceError
from grafotest.services.llm_base import LLMService

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"

_DATA_URL_PREFIX = re.compile(r"^data:(image/\w+);base64,")

# Errors worth another attempt: the request may succeed unchanged
TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.ResourceExhausted,
    google_exceptions.InternalServerError,
    ConnectionError,
    TimeoutError,
)


def decode_image(image_base64: str) -> Tuple[str, bytes]:
    """
    Split an optional data: URL header off base64 image data.

    Returns:
        (mime_type, raw_bytes). The MIME type comes from the data: URL when
        present, otherwise image/jpeg.

    Raises:
        LLMServiceError: The payload is not decodable base64.
    """
    mime_type = DEFAULT_MIME_TYPE
    match = _DATA_URL_PREFIX.match(image_base64)
    if match:
        mime_type = match.group(1)
        image_base64 = image_base64[match.end():]
    try:
        return mime_type, base64.b64decode(image_base64)
    except (binascii.Error, ValueError) as e:
        raise LLMServiceError(
            message="Image data could not be decoded",
            context={"error_type": type(e).__name__},
        )


def response_fragments(response: Any) -> List[str]:
    """Text parts of the first candidate; [] when Gemini returned none."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return [getattr(part, "text", "") or "" for part in parts]


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Guards the Gemini endpoint against calls that are bound to fail.

    Only transport failures count (TRANSIENT_ERRORS after retries are
    exhausted). A request Gemini answers with a client error (bad image,
    rejected key) proves the endpoint reachable and counts as a success.

    State Machine:
        CLOSED
            → transport failure: failure_count += 1
            → failure_count >= failure_threshold: OPEN
        OPEN
            → before_call() raises CircuitBreakerOpenError
            → after recovery_timeout seconds the next call becomes the probe
        HALF_OPEN
            → exactly one probe call in flight; other calls are rejected
            → probe succeeds: CLOSED
            → probe fails: OPEN, timer restarted
            → probe never reports back (cancelled request): after another
              recovery_timeout a new probe is admitted

    Not thread-safe; uvicorn async workers share a single process and loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self.failure_count = 0
        self.state = self.CLOSED
        self.opened_at: Optional[float] = None
        self.probe_started_at: Optional[float] = None

    def before_call(self) -> None:
        """
        Admit or reject one upstream call.

        Raises:
            CircuitBreakerOpenError: Circuit OPEN and still cooling down, or
                HALF_OPEN with the probe call still in flight.
        """
        if self.state == self.CLOSED:
            return

        now = self._clock()

        if self.state == self.OPEN:
            elapsed = now - (self.opened_at or 0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(
                    recovery_time=int(self.recovery_timeout - elapsed)
                )
            logger.info(
                "Circuit breaker HALF_OPEN after %.1fs; admitting one probe call",
                elapsed,
            )
            self.state = self.HALF_OPEN
            self.probe_started_at = now
            return

        probe_age = now - (self.probe_started_at or 0)
        if probe_age < self.recovery_timeout:
            raise CircuitBreakerOpenError(
                recovery_time=int(self.recovery_timeout - probe_age)
            )
        logger.warning("Circuit breaker probe lost after %.1fs; admitting another", probe_age)
        self.probe_started_at = now

    def record_success(self) -> None:
        """Gemini answered. Closes the circuit and clears the failure count."""
        if self.state != self.CLOSED:
            logger.info("Circuit breaker CLOSED (Gemini reachable again)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.opened_at = None
        self.probe_started_at = None

    def record_failure(self) -> None:
        """A transport failure. May open the circuit."""
        self.failure_count += 1
        self.probe_started_at = None

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker back to OPEN (probe call failed)")
            self._open()
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPEN after %d consecutive transport failures",
                self.failure_count,
            )
            self._open()

    def _open(self) -> None:
        self.state = self.OPEN
        self.opened_at = self._clock()


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Google Gemini implementation of the upstream generation call.

    Error Handling Chain:
        Transient error → tenacity retries (retry_max_attempts, backoff)
        → Retries exhausted → LLMServiceError + circuit breaker failure
        → Threshold reached → future calls rejected instantly
        → Recovery timeout → one probe call (HALF_OPEN)
        Non-transient error (Gemini refused the request) → LLMServiceError;
        the breaker records the endpoint as reachable
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-1.5-flash",
        timeout: int = 60,
        retry_max_attempts: int = 2,
        retry_min_wait: int = 1,
        retry_max_wait: int = 10,
        cb_failure_threshold: int = 5,
        cb_recovery_timeout: int = 60,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self.retry_max_attempts = retry_max_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait

        # The SDK keeps auth in module-level state
        if api_key:
            genai.configure(api_key=api_key)

        self.model = genai.GenerativeModel(model_name)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=cb_failure_threshold,
            recovery_timeout=cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            model_name,
            cb_failure_threshold,
            cb_recovery_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate(self, prompt: str, image_base64: str) -> List[str]:
        """
        Send prompt + image to Gemini and return the answer's text fragments.

        Flow:
            1. Refuse immediately if no API key is configured
            2. Decode the image payload
            3. Check circuit breaker → may raise CircuitBreakerOpenError
            4. Call Gemini with retry logic
            5. Record success/failure in circuit breaker

        Raises:
            CircuitBreakerOpenError: Circuit is open (too many recent failures)
            LLMServiceError: Missing key, undecodable image, or Gemini failure
        """
        call_id = str(uuid.uuid4())[:8]

        if not self.is_configured:
            raise LLMServiceError(
                message="GEMINI_API_KEY not set",
                context={"call_id": call_id},
            )

        # Decoded before the breaker so a bad payload never takes the probe slot
        mime_type, image_bytes = decode_image(image_base64)
        self.circuit_breaker.before_call()

        logger.info(
            "[%s] Starting Gemini call: model=%s, image=%s (%d bytes)",
            call_id,
            self.model_name,
            mime_type,
            len(image_bytes),
        )

        contents = [prompt, {"mime_type": mime_type, "data": image_bytes}]

        try:
            response = await self._call_with_retry(contents, call_id)
        except TRANSIENT_ERRORS as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] All Gemini retries exhausted: %s", call_id, str(e))
            raise LLMServiceError(
                message="AI analysis failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "attempts": self.retry_max_attempts},
            ) from e
        except Exception as e:
            # Gemini answered; only transport failures count against the breaker
            self.circuit_breaker.record_success()
            logger.error(
                "[%s] Gemini HTTP error: %s",
                call_id,
                str(e),
                exc_info=True,
            )
            raise LLMServiceError(
                message="Gemini HTTP error",
                context={"call_id": call_id, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        return response_fragments(response)

    async def _call_with_retry(self, contents: List[Any], call_id: str) -> Any:
        """
        Make the Gemini call, retrying transient errors only.

        The circuit breaker check sits outside this method so that it is
        never retried.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry_min_wait,
                max=self.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                start_time = time.time()
                try:
                    response = await self.model.generate_content_async(
                        contents,
                        request_options={"timeout": self.timeout},
                    )
                except Exception as e:
                    logger.warning(
                        "[%s] Gemini call failed after %.0fms: %s",
                        call_id,
                        (time.time() - start_time) * 1000,
                        str(e),
                    )
                    raise
                logger.info(
                    "[%s] Gemini call completed in %.0fms",
                    call_id,
                    (time.time() - start_time) * 1000,
                )
                return response

    async def health_check(self) -> bool:
        """
        True when a call would be attempted: a key is configured and the
        circuit is not open. No network request is made.
        """
        return self.is_configured and self.circuit_breaker.state != CircuitBreaker.OPEN


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state, which must be shared across requests.
gemini_service = GeminiService(
    api_key=settings.gemini_api_key,
    model_name=settings.gemini_model,
    timeout=settings.gemini_timeout,
    retry_max_attempts=settings.retry_max_attempts,
    retry_min_wait=settings.retry_min_wait,
    retry_max_wait=settings.retry_max_wait,
    cb_failure_threshold=settings.cb_failure_threshold,
    cb_recovery_timeout=settings.cb_recovery_timeout,
)
