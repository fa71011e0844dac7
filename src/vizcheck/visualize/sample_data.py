"""Canonical document set for offline runs of the vertical bar catalog.

Aggregated through :mod:`.aggregation`, these documents yield the counts,
legend orders and inspector rows the vertical bar scenarios expect from
the logstash sample data for 2015-09-20 .. 2015-09-22.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

FIRST_BUCKET = datetime(2015, 9, 20, tzinfo=timezone.utc)
BUCKET_SECONDS = 3 * 3600

BUCKET_COUNTS: tuple[int, ...] = (
    37, 202, 740, 1437, 1371, 751, 188, 31, 42, 202, 683, 1361,
    1415, 707, 177, 27, 32, 175, 707, 1408, 1355, 726, 201, 29,
)

# (response, machine.os, copies) tagged into the first two buckets; every
# other document carries neither field.
_TAGGED: dict[int, tuple[tuple[str, str, int], ...]] = {
    0: (
        ('200', 'win 8', 7),
        ('200', 'win xp', 7),
        ('200', 'ios', 1),
        ('200', 'osx', 1),
        ('200', 'win 7', 1),
        ('404', 'ios', 5),
        ('503', 'ios', 1),
        ('503', 'osx', 1),
        ('503', 'win 7', 1),
        ('503', 'win 8', 1),
        ('503', 'win xp', 1),
    ),
    1: (
        ('404', 'osx', 1),
        ('404', 'win 7', 1),
        ('404', 'win 8', 1),
        ('404', 'win xp', 1),
    ),
}


def canonical_documents() -> list[dict[str, Any]]:
    docs: list[dict[str, Any]] = []
    for index, count in enumerate(BUCKET_COUNTS):
        start = FIRST_BUCKET + timedelta(seconds=index * BUCKET_SECONDS)
        tags: list[tuple[str, str]] = []
        for response, os_name, copies in _TAGGED.get(index, ()):
            tags.extend([(response, os_name)] * copies)
        if len(tags) > count:
            raise ValueError(f'bucket {index} has more tagged docs than its count')
        for n in range(count):
            doc: dict[str, Any] = {
                '@timestamp': start + timedelta(seconds=(n * (BUCKET_SECONDS - 1)) // count),
            }
            if n < len(tags):
                doc['response.raw'], doc['machine.os'] = tags[n]
            docs.append(doc)
    return docs
