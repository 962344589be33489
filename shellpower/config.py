from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "SHELLPOWER_", "case_sensitive": False}

    # Rasterizer
    raster_resolution: int = 2048
    area_multiplier_max: float = 24.0
    grazing_epsilon: float = 1e-6
    quantize_channels: bool = False

    # Reduction pass
    reduction_shard_rows: int = 256
    reduction_workers: int = 1

    # Cell IV sweep
    iv_sample_count: int = 200
    diode_solver_rtol: float = 1e-6
    diode_solver_max_iter: int = 100

    # String combination
    string_samples_per_segment: int = 200
    reverse_bias_voltage: float = 100.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()
