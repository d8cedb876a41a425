"""
Replicate Prediction Client - Utility Modules

This package contains utility modules for the prediction client:
- polling: Bounded fixed-delay polling with three-way outcomes
- logger: Logging utilities
"""

__version__ = '1.0.0'

from utils.polling import (
    PollOutcome,
    PollState,
    run_until_done,
)

from utils.logger import (
    setup_logger,
)

__all__ = [
    # Polling
    'PollOutcome',
    'PollState',
    'run_until_done',
    # Logger
    'setup_logger',
]
