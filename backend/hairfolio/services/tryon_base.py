"""
Hairfolio Backend: Try-On Collaborator Interfaces
==================================================

What:  Abstract contracts for the external services the two try-on
       pipelines (hairstyle and hair colour) call in sequence.
How:   Concrete implementations (Gemini, see gemini_service.py) inherit from
       these classes; tests substitute fakes.
Who:   TryOnController, ColorTryOnController.

Hairstyle pipeline:
    StyleDescriptionService.describe(style_ref)           → keywords
    CompositeGenerationService.compose(face, style, kw)   → generated image ref

Colour pipeline:
    HairColorAnalysisService.analyze_color_style(style)   → ColorAnalysis
    HairColorAnalysisService.analyze_user_photo(face)     → UserPhotoAnalysis
    HairColorTransformService.apply_color(face, ...)      → generated image ref

No interface retries. A failure raises and the controller reports it.
"""

from abc import ABC, abstractmethod

from hairfolio.schemas.color import ColorAnalysis, ColorTryOnOptions, UserPhotoAnalysis


class StyleDescriptionService(ABC):
    """Extracts descriptive keywords from a reference hairstyle image."""

    @abstractmethod
    async def describe(self, image_ref: str) -> str:
        """
        Return a comma-separated keyword string describing the hairstyle
        (style, texture, color, length, key features).

        Raises:
            ExternalServiceError (or any exception) on failure.
            CircuitBreakerOpenError while the service is failing repeatedly.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


class CompositeGenerationService(ABC):
    """Renders the client's face wearing the reference hairstyle."""

    @abstractmethod
    async def compose(self, face_ref: str, style_ref: str, keywords: str) -> str:
        """
        Return a reference to the generated image.

        Raises:
            NoImageProducedError when the model answers without an image.
            ExternalServiceError (or any exception) on other failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


class HairColorAnalysisService(ABC):
    """Reads hair colour from a reference image, and hair plus skin tone from a face photo."""

    @abstractmethod
    async def analyze_color_style(self, image_ref: str) -> ColorAnalysis:
        """
        Dominant hair colours and colouring technique of a reference image.

        Raises:
            ExternalServiceError (or any exception) on failure.
        """
        ...

    @abstractmethod
    async def analyze_user_photo(self, image_ref: str) -> UserPhotoAnalysis:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


class HairColorTransformService(ABC):
    """Recolours the client's existing hair, keeping cut and texture."""

    @abstractmethod
    async def apply_color(
        self,
        face_ref: str,
        user: UserPhotoAnalysis,
        color: ColorAnalysis,
        options: ColorTryOnOptions,
    ) -> str:
        """
        Return a reference to the recoloured image.

        Raises:
            NoImageProducedError when the model answers without an image.
            ExternalServiceError (or any exception) on other failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
