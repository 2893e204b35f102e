import getpass
import os
from pathlib import Path
from typing import Mapping

import structlog
import yaml
from pydantic import BaseModel
from xdg import xdg_config_home
from xdg import xdg_data_home

from ghadispatch.github.client import DEFAULT_API_URL
from ghadispatch.jobs.correlator import AmbiguityPolicy
from ghadispatch.jobs.extractor import DEFAULT_EXPORT_MARKER
from ghadispatch.jobs.retry_policy import RetryPolicy

TOKEN_ENVIRONMENT_VARIABLES = ("GITHUB_TOKEN", "GH_TOKEN")


# this is deliberately a function so tests can redirect it
def user_config_path() -> Path:
    return xdg_config_home() / "ghadispatch" / "config.yml"


def default_data_dir() -> Path:
    return xdg_data_home() / "ghadispatch"


logger = structlog.stdlib.get_logger(__name__)


class UserConfig(BaseModel):
    token: None | str = None
    api_url: str = DEFAULT_API_URL
    identity: None | str = None
    data_dir: None | Path = None
    export_marker: str = DEFAULT_EXPORT_MARKER
    ambiguity_policy: AmbiguityPolicy = AmbiguityPolicy.ACCEPT_EARLIEST
    correlation: RetryPolicy = RetryPolicy(
        interval_seconds=5.0, max_elapsed_seconds=600.0
    )
    polling: RetryPolicy = RetryPolicy(
        interval_seconds=10.0, backoff_factor=1.5, max_interval_seconds=60.0
    )
    queued_interval_seconds: float = 30.0


def load_user_config(path: None | Path = None) -> UserConfig:
    config_path = path if path is not None else user_config_path()
    if not config_path.exists():
        return UserConfig()
    with config_path.open("r") as f:
        content = yaml.load(f, Loader=yaml.SafeLoader)
    logger.debug(f"loaded configuration from {config_path}")
    return UserConfig(**(content if content is not None else {}))


def write_user_config(uc: UserConfig, path: None | Path = None) -> None:
    config_path = path if path is not None else user_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w") as f:
        f.write(yaml.dump(uc.model_dump(mode="json"), Dumper=yaml.SafeDumper))


def resolve_token(
    config: UserConfig,
    environ: Mapping[str, str] = os.environ,
) -> None | str:
    for variable in TOKEN_ENVIRONMENT_VARIABLES:
        token = environ.get(variable)
        if token:
            return token
    return config.token


def resolve_identity(config: UserConfig) -> str:
    return config.identity if config.identity is not None else getpass.getuser()


def resolve_data_dir(config: UserConfig) -> Path:
    return config.data_dir if config.data_dir is not None else default_data_dir()
