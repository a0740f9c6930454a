from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # LLM configuration
    # openai: OpenAI-compatible /chat/completions | dashscope: Alibaba Cloud native | ollama: local model
    llm_provider: Literal["openai", "dashscope", "ollama"] = "openai"
    llm_api_key: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model_name: str = "gpt-4o"
    llm_embedding_model: str = "text-embedding-3-small"
    llm_embedding_base_url: str = ""  # empty = same as llm_base_url
    llm_system_message: str = "You are an expert educational assessment evaluator."
    llm_timeout: float = 60.0  # per-call timeout; expiry is treated as a failed call
    llm_max_retries: int = 2  # retries for transient errors (exponential backoff)
    llm_retry_delay: float = 1.0  # first retry delay in seconds, doubles afterwards
    llm_max_concurrent: int = 5  # global cap on in-flight model calls
    ollama_num_ctx: int = 8192

    # Scoring fallbacks (0-1 range unless noted)
    accuracy_fallback: float = 0.5
    conceptual_fallback: float = 0.5
    presentation_fallback: float = 0.7
    essay_fallback_ratio: float = 0.6  # share of question points
    short_answer_fallback_ratio: float = 0.5

    # Plagiarism / similarity
    similarity_threshold: float = 0.85
    direct_comparison_max_corpus: int = 10
    embedding_batch_size: int = 20
    evidence_threshold: float = 0.7
    min_answer_length: int = 30
    ai_detection_min_length: int = 100
    ai_generated_threshold: float = 0.7
    source_detection_min_length: int = 100
    source_confidence_min: float = 0.65
    cross_language_min_length: int = 200
    ai_detection_max_chars: int = 2000
    source_detection_max_chars: int = 1500
    verdict_max_chars: int = 1000

    # Combined plagiarism verdict (0-100 scale)
    plagiarism_ai_weight: float = 0.7
    plagiarism_heuristic_weight: float = 0.3
    plagiarism_possible_band: float = 30.0
    plagiarism_significant_band: float = 60.0

    # Adaptive learning (0-1 thresholds applied to 0-100 scores)
    adaptation_threshold: float = 0.7
    struggle_threshold: float = 0.5
    recommendation_seed: int | None = None
    learning_path_weak_score: float = 0.7  # answers below this total score feed the path
    learning_path_max_modules: int = 5

    # Syllabus analysis
    syllabus_max_chars: int = 15000

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    @property
    def embedding_base_url(self) -> str:
        return self.llm_embedding_base_url or self.llm_base_url


settings = Settings()
