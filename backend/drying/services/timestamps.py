from datetime import datetime
from typing import Optional

import pytz

from drying.config import settings


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """
    Timestamps are stored naive in the kiln's local time (SCHEDULE_TIMEZONE),
    which is also what recharge SMS messages print. Aware values are converted
    to that zone before the offset is dropped; naive values are taken as local.
    """
    if value is None or value.utcoffset() is None:
        return value
    return value.astimezone(pytz.timezone(settings.schedule_timezone)).replace(tzinfo=None)
