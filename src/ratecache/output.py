"""Tab-separated rendering of result rows."""

import csv
from typing import Iterable, TextIO

from ratecache.models import RateRow


def write_rows(rows: Iterable[RateRow], stream: TextIO) -> None:
    writer = csv.writer(stream, delimiter="\t", lineterminator="\n")
    writer.writerows(row.as_list() for row in rows)
