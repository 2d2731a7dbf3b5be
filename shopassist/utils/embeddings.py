from sentence_transformers import SentenceTransformer
from functools import lru_cache
import os

from .errors import ProviderError

# multilingual: catalog text is Ukrainian
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"

@lru_cache(maxsize=1)
def get_embedding_model() -> SentenceTransformer:
    model_name = os.getenv("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
    model = SentenceTransformer(model_name, device="cpu")
    return model

def embed_texts(texts: list[str]) -> list[list[float]]:
    if not texts:
        return []
    try:
        model = get_embedding_model()
        # model outputs numpy array -> convert to python lists for Chroma
        vectors = model.encode(texts, normalize_embeddings=True).tolist()
    except Exception as e:
        raise ProviderError(f"embedding failed: {e}") from e
    if len(vectors) != len(texts) or any(not v for v in vectors):
        raise ProviderError("embedding model returned empty output")
    return vectors

def embed_text(text: str) -> list[float]:
    return embed_texts([text])[0]
