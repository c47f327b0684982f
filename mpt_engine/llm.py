"""
Chat Completions клиент для генерации реплик терапевта.

Работает с любым OpenAI-compatible API (vLLM, llama.cpp server, ...).

Возможности:
- Circuit Breaker: open/closed/half-open состояния
- LLMStats: success_rate, avg_response_time
- Retry: exponential backoff при ошибках
- GenerationError вместо fallback-текста: сервис не коммитит ход,
  если генерация не удалась

Движку нужен только протокол TextGenerator; ChatCompletionsClient —
его реализация по умолчанию.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import requests
from pydantic import ValidationError

from mpt_engine.logger import logger
from mpt_engine.schemas import ChatCompletionResponse, ChatMessage
from mpt_engine.settings import settings


class GenerationError(Exception):
    """Raised when the text generator could not produce a reply."""

    def __init__(self, reason: str, attempts: int = 0, original_error: Optional[Exception] = None):
        self.reason = reason
        self.attempts = attempts
        self.original_error = original_error
        message = f"Generation failed: {reason}"
        if attempts:
            message += f" after {attempts} attempt(s)"
        super().__init__(message)


class TextGenerator(Protocol):
    """Внешний генератор: системная директива + транскрипт -> текст."""

    def generate(self, messages: List[ChatMessage]) -> str:
        ...


@dataclass
class CircuitBreakerState:
    """Состояние circuit breaker"""
    failures: int = 0
    last_failure_time: float = 0.0
    is_open: bool = False
    open_until: float = 0.0


@dataclass
class LLMStats:
    """Статистика LLM клиента"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_retries: int = 0
    circuit_breaker_trips: int = 0
    total_response_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        """Процент успешных запросов"""
        if self.total_requests == 0:
            return 100.0
        return (self.successful_requests / self.total_requests) * 100

    @property
    def average_response_time_ms(self) -> float:
        """Среднее время ответа"""
        if self.successful_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.successful_requests


class ChatCompletionsClient:
    """
    Клиент OpenAI-compatible /chat/completions.

    Пример:
        client = ChatCompletionsClient(base_url="http://localhost:8000/v1")
        text = client.generate([
            ChatMessage(role="system", content=directive.render()),
            ChatMessage(role="user", content="Привет"),
        ])
    """

    # Настройки retry
    INITIAL_DELAY: float = 1.0
    MAX_DELAY: float = 10.0
    BACKOFF_MULTIPLIER: float = 2.0

    # Настройки circuit breaker
    CIRCUIT_BREAKER_THRESHOLD: int = 5
    CIRCUIT_BREAKER_TIMEOUT: int = 60

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        enable_circuit_breaker: bool = True,
        enable_retry: bool = True,
    ):
        """
        Args:
            model: Название модели (из settings если не указано)
            base_url: URL API (из settings если не указано)
            api_key: Bearer токен; пустой -> без заголовка Authorization
            timeout: Таймаут запроса в секундах
            max_retries: Число попыток
            enable_circuit_breaker: Включить circuit breaker
            enable_retry: Включить retry с exponential backoff
        """
        self.model = model or settings.llm.model
        self.base_url = base_url or settings.llm.base_url
        self.api_key = settings.llm.api_key if api_key is None else api_key
        self.timeout = timeout or settings.llm.timeout
        self.max_retries = max_retries or settings.llm.max_retries
        self.temperature = settings.llm.temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.llm.max_tokens

        self._enable_circuit_breaker = enable_circuit_breaker
        self._enable_retry = enable_retry

        self._circuit_breaker = CircuitBreakerState()
        self._stats = LLMStats()

    def reset(self) -> None:
        self._stats = LLMStats()

    def reset_circuit_breaker(self) -> None:
        self._circuit_breaker = CircuitBreakerState()
        logger.info("Circuit breaker reset")

    @property
    def stats(self) -> LLMStats:
        """Статистика запросов"""
        return self._stats

    @property
    def is_circuit_open(self) -> bool:
        return self._is_circuit_open()

    def generate(self, messages: List[ChatMessage]) -> str:
        """
        Сгенерировать ответ терапевта.

        Raises:
            GenerationError: circuit breaker открыт или все попытки провалились
        """
        self._stats.total_requests += 1
        start_time = time.time()

        if self._enable_circuit_breaker and self._is_circuit_open():
            self._stats.failed_requests += 1
            logger.warning("Circuit breaker open, generation skipped")
            raise GenerationError("circuit breaker open")

        last_error: Optional[Exception] = None
        delay = self.INITIAL_DELAY
        max_attempts = self.max_retries if self._enable_retry else 1

        for attempt in range(max_attempts):
            try:
                response_text = self._call_llm(messages)

                elapsed_ms = (time.time() - start_time) * 1000
                self._stats.successful_requests += 1
                self._stats.total_response_time_ms += elapsed_ms
                self._reset_failures()

                logger.debug(
                    "LLM request successful",
                    attempt=attempt + 1,
                    elapsed_ms=round(elapsed_ms, 1)
                )
                return response_text

            except requests.exceptions.Timeout as e:
                last_error = e
                logger.warning(f"LLM timeout (attempt {attempt + 1}/{max_attempts})")
            except requests.exceptions.ConnectionError as e:
                last_error = e
                logger.warning(f"LLM connection error (attempt {attempt + 1}/{max_attempts})")
            except requests.exceptions.RequestException as e:
                last_error = e
                logger.warning(f"LLM request failed (attempt {attempt + 1}/{max_attempts})")
            except (ValueError, ValidationError) as e:
                last_error = e
                logger.warning(f"LLM invalid response (attempt {attempt + 1}/{max_attempts})")

            if attempt < max_attempts - 1:
                self._stats.total_retries += 1
                logger.debug(f"Retrying in {delay:.1f}s...")
                time.sleep(delay)
                delay = min(delay * self.BACKOFF_MULTIPLIER, self.MAX_DELAY)

        self._stats.failed_requests += 1
        if self._enable_circuit_breaker:
            self._record_failure()

        logger.error(
            "LLM all retries failed",
            error=str(last_error)[:100] if last_error else "unknown",
        )
        raise GenerationError(
            str(last_error) if last_error else "unknown",
            attempts=max_attempts,
            original_error=last_error,
        )

    def _call_llm(self, messages: List[ChatMessage]) -> str:
        """Один запрос без retry/circuit breaker (тесты могут мокать)."""
        base_url_normalized = self.base_url.rstrip("/")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        response = requests.post(
            f"{base_url_normalized}/chat/completions",
            json={
                "model": self.model,
                "messages": [m.model_dump() for m in messages],
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            },
            headers=headers,
            timeout=self.timeout
        )
        response.raise_for_status()

        completion = ChatCompletionResponse.model_validate(response.json())
        content = completion.content
        if not content or not content.strip():
            raise ValueError("Empty content in response from LLM")
        return content

    # =========================================================================
    # CIRCUIT BREAKER
    # =========================================================================

    def _is_circuit_open(self) -> bool:
        if not self._circuit_breaker.is_open:
            return False

        if time.time() >= self._circuit_breaker.open_until:
            logger.info("Circuit breaker attempting recovery (half-open state)")
            self._circuit_breaker.is_open = False
            return False

        return True

    def _record_failure(self) -> None:
        self._circuit_breaker.failures += 1
        self._circuit_breaker.last_failure_time = time.time()

        if self._circuit_breaker.failures >= self.CIRCUIT_BREAKER_THRESHOLD:
            self._circuit_breaker.is_open = True
            self._circuit_breaker.open_until = time.time() + self.CIRCUIT_BREAKER_TIMEOUT
            self._stats.circuit_breaker_trips += 1

            logger.error(
                "Circuit breaker opened",
                failures=self._circuit_breaker.failures,
                timeout=self.CIRCUIT_BREAKER_TIMEOUT
            )

    def _reset_failures(self) -> None:
        self._circuit_breaker.failures = 0
        if self._circuit_breaker.is_open:
            logger.info("Circuit breaker closed after successful request")
            self._circuit_breaker.is_open = False

    def get_stats_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self._stats.total_requests,
            "successful_requests": self._stats.successful_requests,
            "failed_requests": self._stats.failed_requests,
            "total_retries": self._stats.total_retries,
            "circuit_breaker_trips": self._stats.circuit_breaker_trips,
            "success_rate": round(self._stats.success_rate, 1),
            "average_response_time_ms": round(self._stats.average_response_time_ms, 1),
            "circuit_breaker_open": self._circuit_breaker.is_open,
        }
