"""
All-or-nothing execution of engine calls.

Every participant (ledger, token, event log) exposes ``snapshot()`` and
``restore(state)``. ``atomic`` snapshots them all on entry and puts every one
of them back if the body raises, so a failed call leaves no trace.
"""

import copy
import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)


@contextmanager
def atomic(*participants):
    snapshots = [(participant, copy.deepcopy(participant.snapshot())) for participant in participants]
    try:
        yield
    except Exception as exc:
        logger.debug("Rolling back %d participants after %s", len(snapshots), type(exc).__name__)
        for participant, state in reversed(snapshots):
            participant.restore(state)
        raise
