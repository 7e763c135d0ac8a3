from __future__ import annotations

import argparse
import getpass as _getpass
import json as _json
import logging
import os
import sys
from typing import List, Optional

from szip import __version__
from szip.codec import CODECS, clamp_level
from szip.config import SzipConfig, config_path, load_config, save_config, set_value
from szip.constants import DEFAULT_HASH_ALGORITHM, EXISTS_POLICIES
from szip.errors import IncorrectPasswordError, PasswordRequiredError, SzipError, ValidationError
from szip.hashutil import digest_many, supported_algorithms, verify_file_hash
from szip.passwords import check_strength, generate_password
from szip.reader import ArchiveReader
from szip.writer import WriteOptions, create_archive


def configure_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Return the CLI logger, writing to stderr at a level picked by the flags."""
    log = logging.getLogger("szip.cli")
    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        log.addHandler(handler)
    log.propagate = False
    if quiet:
        log.setLevel(logging.ERROR)
    elif verbose:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.WARNING)
    return log


def format_size(num: int) -> str:
    """Human-readable byte size (1024 based)."""
    size = float(num)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size) < 1024 or unit == "TB":
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TB"


def _prompt_password(prompt: str = "Archive password: ") -> Optional[str]:
    # Never block on a pipe; callers turn None into PasswordRequiredError
    if not sys.stdin.isatty():
        return None
    return _getpass.getpass(prompt)


def _default_output(source: str, cfg: SzipConfig) -> str:
    name = os.path.basename(os.path.abspath(source).rstrip(os.sep)) + ".zip"
    if cfg.output_directory:
        return os.path.join(os.path.expanduser(cfg.output_directory), name)
    return os.path.join(os.path.dirname(os.path.abspath(source)), name)


def _entry_printer(quiet: bool, show_progress: bool):
    if quiet or not show_progress or not sys.stderr.isatty():
        return None

    def _show(entry, count):
        print(f"\r  {count} entries  {entry.path[-48:]:<48}", end="", file=sys.stderr, flush=True)

    return _show


def _end_progress(printer) -> None:
    if printer is not None:
        print(file=sys.stderr)


def cmd_zip(
    source: str,
    output: Optional[str] = None,
    *,
    cfg: SzipConfig,
    log: logging.Logger,
    password: Optional[str] = None,
    level: Optional[int] = None,
    method: str = "deflate",
    hash_algorithm: Optional[str] = None,
    exclude: Optional[List[str]] = None,
    include_hidden: Optional[bool] = None,
    quiet: bool = False,
) -> bool:
    """Create an archive from a file or directory."""
    out = output or _default_output(source, cfg)
    opts = WriteOptions(
        password=password or None,
        compression_level=clamp_level(level if level is not None else cfg.compression_level),
        method=method,
        hash_algorithm=hash_algorithm or cfg.hash_algorithm,
        exclude=list(cfg.exclude) + list(exclude or []),
        include_hidden=cfg.include_hidden if include_hidden is None else include_hidden,
    )
    printer = _entry_printer(quiet, cfg.show_progress)
    try:
        meta = create_archive(source, out, opts, logger=log, on_entry=printer)
    finally:
        _end_progress(printer)
    if quiet:
        print(meta.output_path)
        return True
    print(f"Created: {meta.output_path}")
    print(f"  entries: {meta.entry_count}")
    print(f"  size: {format_size(meta.source_size)} -> {format_size(meta.size)} ({meta.compression_ratio:.2f}% saved)")
    if meta.password_protected:
        print("  password: protected (note: entry contents are not encrypted)")
    if meta.digest is not None:
        print(f"  {meta.digest.algorithm.upper()}: {meta.digest.hexdigest}")
    return True


def cmd_unzip(
    archive: str,
    *,
    outdir: Optional[str] = None,
    password: Optional[str] = None,
    exists: str = "overwrite",
    log: logging.Logger,
    cfg: SzipConfig,
    quiet: bool = False,
) -> bool:
    """Extract an archive, prompting for the password when it is needed."""
    with ArchiveReader(archive, password=password, logger=log) as r:
        if r.requires_password and not password:
            r.password = _prompt_password()
        printer = _entry_printer(quiet, cfg.show_progress)
        try:
            result = r.extract(outdir, exists=exists, on_entry=printer)
        finally:
            _end_progress(printer)
    for skip in result.skipped:
        print(f"Warning: {skip}", file=sys.stderr)
    if not quiet:
        print(f"Extracted {len(result.written)} entries to {result.directory}")
        if result.existing_skipped:
            print(f"  skipped existing: {result.existing_skipped}")
        if result.renamed:
            print(f"  renamed: {result.renamed}")
    return True


def cmd_list(archive: str) -> bool:
    """List archive entries."""
    with ArchiveReader(archive) as r:
        entries = r.list()
        protected = r.requires_password
    if protected:
        print("# password protected", file=sys.stderr)
    for e in entries:
        if e.is_dir:
            print(f"{e.kind}\t{e.path}/")
        else:
            print(f"{e.kind}\t{e.size}\t{e.compressed_size}\t{e.path}")
    return True


def cmd_hash(path: str, algorithms: List[str], *, expected: Optional[str] = None, jobs: int = 1) -> bool:
    """Print digests of a file; with ``expected`` compare against the first algorithm."""
    if expected:
        alg = algorithms[0]
        ok = verify_file_hash(path, expected, alg)
        print(f"{alg.upper()}: {'OK' if ok else 'MISMATCH'}")
        return ok
    for res in digest_many(path, algorithms, jobs=jobs):
        print(f"{res.algorithm.upper()}  {res.hexdigest}  {res.name}  ({res.duration:.3f}s)")
    return True


def cmd_genpass(length: int = 16, *, symbols: bool = True, exclude_similar: bool = False) -> bool:
    pw = generate_password(length, symbols=symbols, exclude_similar=exclude_similar)
    strength = check_strength(pw)
    print(pw)
    print(f"strength: {strength.score}/11, entropy {strength.entropy:.1f} bits", file=sys.stderr)
    return True


def cmd_config(action: str, key: Optional[str] = None, value: Optional[str] = None, *, path: Optional[str] = None) -> bool:
    """Show, update or reset the persisted configuration."""
    path = path or config_path()
    if action == "show":
        print(_json.dumps(load_config(path).to_dict(), indent=2, sort_keys=True))
        print(f"# {path}", file=sys.stderr)
    elif action == "set":
        if key is None or value is None:
            raise ValidationError("config set requires KEY and VALUE")
        save_config(set_value(load_config(path), key, value), path)
        print(f"{key} updated")
    elif action == "reset":
        save_config(SzipConfig(), path)
        print("Configuration reset to defaults")
    else:
        raise ValidationError(f"Unknown config action: {action!r}")
    return True


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="szip",
        description="Simple ZIP archiver with path-traversal protection, integrity digests and a password gate",
        epilog="The password gate checks a salted credential stored in the ZIP comment; entry data is not encrypted.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log every entry")
    ap.add_argument("-q", "--quiet", action="store_true", help="limit outputs to summaries only")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_zip = sub.add_parser("zip", help="Create an archive")
    ap_zip.add_argument("source", help="File or directory to archive")
    ap_zip.add_argument("output", nargs="?", help="Output .zip path (default: SOURCE.zip)")
    ap_zip.add_argument("-p", "--password", help="Protect the archive with a password")
    ap_zip.add_argument("-l", "--level", type=int, help="Compression level 1-9 (clamped)")
    ap_zip.add_argument("--method", default="deflate", choices=sorted(CODECS), help="Compression method")
    ap_zip.add_argument("--hash", dest="hash_algorithm", choices=supported_algorithms(), help="Digest the finished archive")
    ap_zip.add_argument("--exclude", action="append", default=[], metavar="PATTERN", help="Glob pattern to skip (repeatable)")
    ap_zip.add_argument("--no-hidden", dest="include_hidden", action="store_false", default=None, help="Skip dotfiles")

    ap_unzip = sub.add_parser("unzip", help="Extract an archive")
    ap_unzip.add_argument("archive", help="Archive path")
    ap_unzip.add_argument("-o", "--outdir", help="Output directory (default: next to the archive)")
    ap_unzip.add_argument("-p", "--password", help="Archive password")
    ap_unzip.add_argument(
        "--exists",
        choices=EXISTS_POLICIES,
        help="What to do when a destination file exists (default from config: overwrite)",
    )

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    ap_hash = sub.add_parser("hash", help="Compute or verify file digests")
    ap_hash.add_argument("file", help="File to digest")
    ap_hash.add_argument(
        "-a", "--algorithm", action="append", dest="algorithms", choices=supported_algorithms(),
        help=f"Digest algorithm (repeatable, default {DEFAULT_HASH_ALGORITHM})",
    )
    ap_hash.add_argument("--verify", metavar="HEX", help="Expected digest; exit status 1 on mismatch")
    ap_hash.add_argument("-j", "--jobs", type=int, default=1, help="Parallel digest passes")

    ap_gen = sub.add_parser("genpass", help="Generate a random password")
    ap_gen.add_argument("--length", type=int, default=16)
    ap_gen.add_argument("--no-symbols", dest="symbols", action="store_false")
    ap_gen.add_argument("--exclude-similar", action="store_true", help="Leave out look-alike characters")

    ap_cfg = sub.add_parser("config", help="Show or change persisted settings")
    ap_cfg.add_argument("action", choices=("show", "set", "reset"))
    ap_cfg.add_argument("key", nargs="?")
    ap_cfg.add_argument("value", nargs="?")
    return ap


def main(argv: List[str] | None = None):
    args = build_parser().parse_args(argv)
    log = configure_logging(args.verbose, args.quiet)
    try:
        if args.cmd == "config":
            cmd_config(args.action, args.key, args.value)
            sys.exit(0)
        cfg = load_config()
        if args.cmd == "zip":
            cmd_zip(
                args.source,
                args.output,
                cfg=cfg,
                log=log,
                password=args.password,
                level=args.level,
                method=args.method,
                hash_algorithm=args.hash_algorithm,
                exclude=args.exclude,
                include_hidden=args.include_hidden,
                quiet=args.quiet,
            )
        elif args.cmd == "unzip":
            cmd_unzip(
                args.archive,
                outdir=args.outdir or None,
                password=args.password,
                exists=args.exists or cfg.exists,
                log=log,
                cfg=cfg,
                quiet=args.quiet,
            )
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "hash":
            ok = cmd_hash(args.file, args.algorithms or [DEFAULT_HASH_ALGORITHM], expected=args.verify, jobs=args.jobs)
            sys.exit(0 if ok else 1)
        elif args.cmd == "genpass":
            cmd_genpass(args.length, symbols=args.symbols, exclude_similar=args.exclude_similar)
        else:
            raise RuntimeError("Unknown command")
    except IncorrectPasswordError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except PasswordRequiredError:
        print("Error: Archive is password protected. Provide --password.", file=sys.stderr)
        sys.exit(2)
    except (SzipError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)
    sys.exit(0)


def unzip_main(argv: List[str] | None = None):
    """Entry point for the ``sunzip`` script: ``sunzip ARCHIVE [options]``."""
    args = list(sys.argv[1:] if argv is None else argv)
    flags = [a for a in args if a in ("-v", "--verbose", "-q", "--quiet")]
    rest = [a for a in args if a not in flags]
    main(flags + ["unzip"] + rest)


if __name__ == "__main__":
    main()
