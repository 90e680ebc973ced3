# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

"""
Access to RIB dump files, local or remote, compressed or not.
"""

import bz2
import contextlib
import datetime
import gzip
import io
import logging
import os
import os.path
import shutil
import urllib.request
from typing import BinaryIO, Iterator, Optional

logger = logging.getLogger(__name__)

RIS_LATEST_URL = "http://data.ris.ripe.net/rrc%02i/latest-bview.gz"
RIS_DATED_URL = "https://data.ris.ripe.net/rrc%02i/%%Y.%%m/bview.%%Y%%m%%d.0000.gz"

# RIS collectors that publish RIB dumps.
RIS_COLLECTORS = [0, 1, 3, 4, 5, 6, 7, 10, 11, 12, 13, 14, 15, 16, 18, 19, 20, 21, 22, 23, 24, 25, 26]

GZIP_MAGIC = b'\x1f\x8b'
BZIP2_MAGIC = b'BZh'

BLOCK_SIZE = 1 << 20


def is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def collector_url(collector: int, date: Optional[datetime.date] = None) -> str:
    """Get the URL of a RIS collector's latest RIB dump, or the one of the given date."""
    if date is None:
        return RIS_LATEST_URL % collector
    return date.strftime(RIS_DATED_URL % collector)


def decompress(raw: BinaryIO) -> BinaryIO:
    """Wrap raw in a gzip or bzip2 decompressor if its magic bytes say so."""
    buffered = raw if isinstance(raw, io.BufferedReader) else io.BufferedReader(raw)
    magic = buffered.peek(len(BZIP2_MAGIC))[:len(BZIP2_MAGIC)]
    if magic.startswith(GZIP_MAGIC):
        return gzip.GzipFile(fileobj=buffered, mode='rb')
    if magic == BZIP2_MAGIC:
        return bz2.BZ2File(buffered, mode='rb')
    return buffered


@contextlib.contextmanager
def open_snapshot(source: str) -> Iterator[BinaryIO]:
    """
    Open a RIB dump for reading, given a local path or an http(s) URL.

    gzip and bzip2 compressed dumps are decompressed on the fly. Errors
    opening the source (OSError, including urllib.error.URLError) propagate.
    """
    with contextlib.ExitStack() as stack:
        if is_url(source):
            logger.info("Fetching %s", source)
            raw = stack.enter_context(urllib.request.urlopen(source))
        else:
            logger.info("Reading %s", source)
            raw = stack.enter_context(open(source, 'rb'))
        yield stack.enter_context(decompress(raw))


def download(url: str, path: str) -> str:
    """
    Download url to path, unless path already exists.

    The data is written to path + ".part" first and renamed once complete.
    """
    if os.path.exists(path):
        logger.info("Already have %s", path)
        return path
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    partial = path + ".part"
    if os.path.exists(partial):
        os.remove(partial)
    logger.info("Downloading %s from %s", path, url)
    with urllib.request.urlopen(url) as response, open(partial, 'wb') as out_file:
        shutil.copyfileobj(response, out_file, BLOCK_SIZE)
    os.rename(partial, path)
    return path
