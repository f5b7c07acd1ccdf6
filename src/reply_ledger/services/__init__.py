"""Clients for the external systems the pipeline depends on."""

from .ai_client import AIClient, AIClientError
from .blockchain import BlockchainError, BlockchainGateway, build_chain_gateways
from .embeddings import EmbeddingService, cosine_similarity
from .pinning import PinningError, PinningService
from .social import SocialPoster, SocialPosterError

__all__ = [
    "AIClient", "AIClientError",
    "BlockchainError", "BlockchainGateway", "build_chain_gateways",
    "EmbeddingService", "cosine_similarity",
    "PinningError", "PinningService",
    "SocialPoster", "SocialPosterError",
]
