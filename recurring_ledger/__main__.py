"""Run the recurring-transaction scheduler: python -m recurring_ledger"""

import asyncio

from recurring_ledger.audit import configure_logging
from recurring_ledger.config import get_settings
from recurring_ledger.orchestrator import create_app_components, run_scheduler


def main() -> None:
    configure_logging(get_settings().app.log_level)
    components = create_app_components(use_storage=True)
    try:
        asyncio.run(run_scheduler(components))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
