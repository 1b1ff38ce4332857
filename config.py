"""
Agent configuration.

Read once from the environment at start-up:

    SMC_AGENT_HOST   listen address            (0.0.0.0)
    SMC_AGENT_PORT   listen port               (9898)
    SMC_SHOW_IMAGE   read the portrait photo   (true)
    SMC_SHOW_LASER   read the laser ID         (true)
    SMC_SHOW_NHSO    read NHSO insurance data  (false)
    SMC_LOG_LEVEL    logging level             (INFO)
    SMC_LOG_FILE     log file, empty disables  (smc_agent.log)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from smc import Options

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9898
DEFAULT_LOG_FILE = "smc_agent.log"

TRUE_VALUES = {"1", "t", "true"}
FALSE_VALUES = {"0", "f", "false"}


def get_env(environ: Mapping[str, str], key: str, default: str) -> str:
    value = environ.get(key, "")
    return value if value else default


def get_env_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    """Parse a boolean variable; unset or unparseable values give `default`"""
    value = environ.get(key, "").strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    return default


def get_env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    try:
        return int(environ.get(key, ""))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    options: Options = Options()
    log_level: str = "INFO"
    log_file: str = DEFAULT_LOG_FILE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            host=get_env(env, "SMC_AGENT_HOST", DEFAULT_HOST),
            port=get_env_int(env, "SMC_AGENT_PORT", DEFAULT_PORT),
            options=Options(
                show_face_image=get_env_bool(env, "SMC_SHOW_IMAGE", True),
                show_laser_data=get_env_bool(env, "SMC_SHOW_LASER", True),
                show_nhso_data=get_env_bool(env, "SMC_SHOW_NHSO", False),
            ),
            log_level=get_env(env, "SMC_LOG_LEVEL", "INFO").upper(),
            log_file=env.get("SMC_LOG_FILE", DEFAULT_LOG_FILE),
        )
