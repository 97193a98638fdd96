from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "bayesian-experiments"

    # Monte Carlo
    NUM_SAMPLES: int = 10_000

    # Student-t Bayes factor quadrature
    BF_RTOL: float = 1e-8
    QUAD_LIMIT: int = 200

    # Normal effect size prior
    DEFAULT_PRIOR_SD: float = 1.0

    model_config = {"env_prefix": "BAYESEXP_", "env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
