"""
Grafotest API — Abstract LLM Service Interface
===============================================

What:  Abstract base class defining the contract for the upstream generation call.
How:   Concrete implementations inherit from LLMService and implement generate().
Who:   Called by AnalysisService for both analysis operations.

Design Decision:
    AnalysisService depends on this interface, not on GeminiService, so tests
    (and a future provider) can supply any object that yields text fragments.
"""

from abc import ABC, abstractmethod
from typing import List


class LLMService(ABC):
    """
    Abstract interface for an image + prompt generation call.

    Contract:
        - generate() returns the text fragments of the model's first answer
        - An answer with no text yields an empty list, never None
        - All provider-specific errors are wrapped in LLMServiceError
        - CircuitBreakerOpenError may be raised before any network call
    """

    @abstractmethod
    async def generate(self, prompt: str, image_base64: str) -> List[str]:
        """
        Send a prompt and an image to the model.

        Args:
            prompt:       Instruction text.
            image_base64: Base64 image data, optionally prefixed with a
                          data:image/<type>;base64, URL header.

        Returns:
            List[str]: Text fragments in the order the model produced them.

        Raises:
            LLMServiceError: The call failed (after retries, if any).
            CircuitBreakerOpenError: Too many recent failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check whether the service can accept calls.

        Lightweight; does NOT consume API quota.
        """
        ...
