# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

import argparse
import datetime
import logging
import os.path
import sys

import bottleneck
import mrt
import snapshot

LOG_FORMAT = "[%(levelname)s] %(message)s"


def setup_logging(verbosity):
    level = logging.INFO
    if verbosity > 0:
        level = logging.DEBUG
    elif verbosity < 0:
        level = logging.WARNING
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def load_snapshot(source, paths):
    peers = bottleneck.PeerTable()
    try:
        with snapshot.open_snapshot(source) as stream:
            bottleneck.aggregate_paths(peers, mrt.read_rib(stream, peers), paths)
    except (OSError, EOFError) as err:
        sys.exit("Snapshot '%s' cannot be read: %s." % (source, err))
    except mrt.MRTError as err:
        sys.exit("Snapshot '%s' is not a valid TABLE_DUMP_V2 file: %s." % (source, err))
    return paths


def save_text(output_file, bottlenecks):
    try:
        bottleneck.write_bottlenecks(bottlenecks, output_file)
        output_file.close()
    except OSError as err:
        sys.exit("Output file '%s' cannot be written to: %s." % (output_file.name, err.strerror))


def parse_date(text):
    try:
        return datetime.datetime.strptime(text, "%Y%m%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError("invalid date '%s', expected YYYYMMDD" % text)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Tool for finding the bottleneck AS of routes in MRT RIB dumps.")
    parser.add_argument('-v', '--verbose', dest="verbosity", default=0, action="store_const", const=1,
                        help="log debugging output")
    parser.add_argument('-q', '--quiet', dest="verbosity", action="store_const", const=-1,
                        help="only log warnings and errors")
    subparsers = parser.add_subparsers(title="valid subcommands", dest="subcommand")

    parser_analyze = subparsers.add_parser("analyze", help="compute bottleneck ASNs from RIB dumps")
    parser_analyze.add_argument('-o', '--output', dest="outfile", type=argparse.FileType('w'), default=sys.stdout,
                                help="output text file; default is stdout")
    parser_analyze.add_argument('-c', '--collector', dest="collectors", type=int, action="append", default=[],
                                help="also read the latest RIB dump of this RIPE RIS collector (repeatable)")
    parser_analyze.add_argument('snapshots', nargs='*',
                                help="RIB dump files or http(s) URLs (plain, gzip or bzip2)")

    parser_fetch = subparsers.add_parser("fetch", help="download RIB dumps of RIPE RIS collectors")
    parser_fetch.add_argument('-d', '--dir', dest="directory", default="dumps",
                              help="directory to download into; default is 'dumps'")
    parser_fetch.add_argument('--date', dest="date", type=parse_date, default=None,
                              help="download the dumps of this day (YYYYMMDD) instead of the latest ones")
    parser_fetch.add_argument('collectors', nargs='*', type=int,
                              help="collector numbers; default is all known collectors")

    args = parser.parse_args(argv)
    setup_logging(args.verbosity)
    if args.subcommand is None:
        parser.print_help()
    elif args.subcommand == "analyze":
        sources = args.snapshots + [snapshot.collector_url(c) for c in args.collectors]
        if len(sources) == 0:
            parser_analyze.error("no snapshots given")
        paths = {}
        for source in sources:
            load_snapshot(source, paths)
        logging.info("Computing bottlenecks for %i addresses", len(paths))
        save_text(args.outfile, bottleneck.find_as_bottleneck(paths))
    elif args.subcommand == "fetch":
        failed = 0
        for collector in args.collectors or snapshot.RIS_COLLECTORS:
            url = snapshot.collector_url(collector, args.date)
            stamp = "latest" if args.date is None else args.date.strftime("%Y%m%d")
            path = os.path.join(args.directory, "rrc%02i-%s.gz" % (collector, stamp))
            try:
                snapshot.download(url, path)
            except OSError as err:
                logging.warning("Failed to download %s: %s", url, err)
                failed += 1
        if failed:
            sys.exit("%i downloads failed." % failed)
    else:
        parser.print_help()
        sys.exit("No command provided.")


if __name__ == '__main__':
    main()
