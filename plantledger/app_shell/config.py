import logging
import os
import sys

from plantledger.rules.models import LedgerRules

logger = logging.getLogger(__name__)


def configure_logging(rules: LedgerRules) -> None:
    """Entry point logging setup; library modules only ever call getLogger."""
    level = rules.ops.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("plantledger").setLevel(level)


def backend_settings(rules: LedgerRules) -> tuple[str, str]:
    return (
        os.environ.get(rules.backend.url_env, ""),
        os.environ.get(rules.backend.key_env, ""),
    )


def validate_ops_rules(rules: LedgerRules, needs_backend: bool = True) -> None:
    """
    Validate operational requirements before startup.
    Exits the process when required environment variables are missing.
    """
    required = list(rules.ops.required_env)
    if needs_backend:
        required += [rules.backend.url_env, rules.backend.key_env]

    missing = [name for name in required if not os.environ.get(name)]
    if missing:
        logger.critical("Missing required environment variables: %s", ", ".join(missing))
        print(
            f"CRITICAL: Missing required environment variables: {', '.join(missing)}",
            file=sys.stderr,
        )
        sys.exit(1)

    logger.info("Configuration validated")
