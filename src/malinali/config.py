from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    data_root_path: str = "./data"
    database_url: str = "sqlite+aiosqlite:///./data/translations.db"

    # Embedding model (ONNX export of a multilingual MiniLM)
    embedding_model_path: str = "./models/model.onnx"
    tokenizer_path: str = "./models/tokenizer.json"
    embedding_model_id: str = "paraphrase-multilingual-MiniLM-L12-v2"
    embedding_dim: int = 384
    max_sequence_length: int = 128
    embedding_output_name: Optional[str] = None
    # Special tokens; when unset, resolved from the vocabulary
    # ("</s>" then "[SEP]", "<pad>" then "[PAD]")
    end_token: Optional[str] = None
    pad_token: Optional[str] = None

    default_corpus_id: str = "fula"

    # HNSW build parameters
    hnsw_m: int = 32
    hnsw_ef_construction: int = 200

    # Retrieval tunables
    lexical_limit: int = 20
    semantic_k: int = 50
    search_radius: int = 10
    length_penalty_alpha: float = 0.3
    lexical_boost: float = 0.7
    shortlist_size: int = 3

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MALINALI_",
        extra="ignore"
    )

settings = Settings()
