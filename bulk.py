import logging
from typing import Callable, Iterable

from pymongo.errors import PyMongoError

import database
from schemas import BatchItemResult, BatchResult

logger = logging.getLogger(__name__)


def run_batch(ids: Iterable[str], operation: Callable[[str], None]) -> BatchResult:
    """Apply `operation` to each id in turn, stopping at the first failure.

    Nothing is rolled back: items before the failure stay changed and are
    reported "ok", the failing one "failed", the rest "skipped".
    """
    result = BatchResult()
    stopped = False
    for doc_id in ids:
        if stopped:
            result.items.append(BatchItemResult(id=doc_id, status="skipped"))
            continue
        try:
            operation(doc_id)
        except database.DocumentNotFound:
            error = f"{doc_id} not found"
        except (PyMongoError, database.DatabaseUnavailable) as e:
            logger.error("Batch operation failed on %s: %s", doc_id, e)
            error = str(e)
        else:
            result.items.append(BatchItemResult(id=doc_id, status="ok"))
            continue
        result.items.append(BatchItemResult(id=doc_id, status="failed", error=error))
        result.error = error
        stopped = True
    return result
