from .service import ImageExchange, ImageGenerationService

__all__ = ["ImageExchange", "ImageGenerationService"]
