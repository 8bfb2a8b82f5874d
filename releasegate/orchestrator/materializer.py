"""
Environment file materialization.

Moves the checked-in environment template into place as the runtime config
file read by the container stack.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from releasegate.orchestrator.exceptions import MissingConfigError

logger = structlog.get_logger(__name__)

DEFAULT_TEMPLATE = "environments"
DEFAULT_ENV_FILE = ".env"


class EnvironmentMaterializer:
    """
    Produces the runtime `.env` file from the checked-in template.

    NOT idempotent: the template is renamed, not copied. After one successful
    call the template no longer exists, so a second call raises
    MissingConfigError until the template is fetched again. An existing env
    file at the target path is replaced.
    """

    def __init__(self, working_dir: Path | str = ".", env_file_name: str = DEFAULT_ENV_FILE):
        self._working_dir = Path(working_dir)
        self._env_file_name = env_file_name

    @property
    def target_path(self) -> Path:
        return self._working_dir / self._env_file_name

    def materialize(self, template_path: Path | str = DEFAULT_TEMPLATE) -> Path:
        """
        Rename the template to the env file.

        Args:
            template_path: Template location; relative paths resolve against
                the working directory

        Returns:
            Path of the materialized env file

        Raises:
            MissingConfigError: Template absent or not a regular file
        """
        template = Path(template_path)
        if not template.is_absolute():
            template = self._working_dir / template

        if not template.is_file():
            logger.error("env_template_missing", template=str(template))
            raise MissingConfigError(str(template))

        target = self.target_path
        replaced = target.exists()
        template.replace(target)

        logger.info(
            "env_materialized",
            template=str(template),
            env_file=str(target),
            replaced_existing=replaced,
        )
        return target
