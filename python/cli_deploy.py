#!/usr/bin/env python3
"""
Deployment Archive CLI Tool

Packages a built application (build output, dependencies and manifest files)
into a single archive ready for upload to a hosting platform.

Usage:
    python3 cli_deploy.py
    python3 cli_deploy.py build --settings deploy_settings.json --level 6
    python3 cli_deploy.py info azure-deploy.zip --detailed
    python3 cli_deploy.py verify azure-deploy.zip
"""

import argparse
import logging
import sys
from typing import Optional

from colored_logger import SUCCESS_LEVEL, setup_colored_logging, get_colored_logger
from deploy_archive.archive_verifier import ArchiveVerifier
from deploy_archive.archive_writers import ArchiveWriterFactory
from deploy_archive.errors import ArchiveError
from deploy_archive.orchestrator import build_deploy_archive, iter_archive_entries
from deploy_archive.path_utils import determine_extension
from deploy_archive.source_enumerator import SourceEnumerator
from settings import Settings

logger = get_colored_logger(__name__)


class DeployCLI:
    """Command-line interface for building deployment archives."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser with all commands and options."""
        parser = argparse.ArgumentParser(
            description="Package build output, dependencies and manifests into one deployment archive",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Build azure-deploy.zip from dist/, node_modules/ and the package manifests
  python3 cli_deploy.py

  # Build from a settings file with a lower compression level
  python3 cli_deploy.py build --settings deploy_settings.json --level 6

  # List the entries a build would write, without writing anything
  python3 cli_deploy.py build --dry-run

  # Show archive information
  python3 cli_deploy.py info azure-deploy.zip --detailed

  # Verify archive integrity
  python3 cli_deploy.py verify azure-deploy.zip
            """,
        )
        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        # Running without a command builds with the settings defaults
        parser.set_defaults(
            command="build",
            settings=None,
            output=None,
            format=None,
            level=None,
            no_verify=False,
            dry_run=False,
            quiet=False,
            verbose=False,
        )

        build_parser = subparsers.add_parser(
            "build", help="Build the deployment archive (default command)"
        )
        build_parser.add_argument(
            "--settings",
            "-s",
            help="Path to a JSON settings file (default: deploy_settings.json if present)",
        )
        build_parser.add_argument(
            "--output", "-o", help="Output archive path (overrides settings)"
        )
        build_parser.add_argument(
            "--format",
            "-f",
            choices=ArchiveWriterFactory.get_supported_formats(),
            help="Archive format (overrides settings)",
        )
        build_parser.add_argument(
            "--level",
            "-l",
            type=int,
            help="Compression level (zip: 0-9, zstd: 0-22; default: 9 for zip)",
        )
        build_parser.add_argument(
            "--no-verify",
            action="store_true",
            help="Skip the integrity check of the finished archive",
        )
        build_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the entries that would be archived and exit",
        )
        build_parser.add_argument(
            "--quiet", "-q", action="store_true", help="Suppress progress output"
        )
        build_parser.add_argument(
            "--verbose", "-v", action="store_true", help="Log every archived entry"
        )

        info_parser = subparsers.add_parser(
            "info", help="Display information about an existing archive"
        )
        info_parser.add_argument("archive_path", help="Path to the archive file")
        info_parser.add_argument(
            "--detailed", action="store_true", help="Show detailed file listing"
        )

        verify_parser = subparsers.add_parser("verify", help="Verify archive integrity")
        verify_parser.add_argument(
            "archive_path", help="Path to the archive file to verify"
        )

        subparsers.add_parser(
            "formats", help="List supported archive formats and their compression levels"
        )

        return parser

    def run(self, args: Optional[list] = None) -> int:
        """Run the CLI with the given arguments."""
        parsed_args = self.parser.parse_args(args)

        try:
            if parsed_args.command == "build":
                return self._handle_build(parsed_args)
            elif parsed_args.command == "info":
                return self._handle_info(parsed_args)
            elif parsed_args.command == "verify":
                return self._handle_verify(parsed_args)
            elif parsed_args.command == "formats":
                return self._handle_formats(parsed_args)
            else:
                logger.error("Unknown command: %s", parsed_args.command)
                return 1

        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130

    def _handle_build(self, args) -> int:
        """Handle the 'build' command."""
        if args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)
        elif args.quiet:
            logging.getLogger().setLevel(SUCCESS_LEVEL)

        try:
            settings = Settings(args.settings)
        except ArchiveError as e:
            logger.error("Invalid settings: %s", e)
            return 1

        archive_format = args.format or settings.archive_format
        if args.level is not None:
            level = args.level
        elif args.format and args.format != settings.archive_format:
            level = None
        else:
            level = settings.compression_level

        if args.dry_run:
            return self._list_entries(settings)

        try:
            report = build_deploy_archive(
                sources=settings.sources,
                output_path=args.output or settings.output_path,
                archive_format=archive_format,
                compression_level=level,
                symlink_policy=settings.symlink_policy,
                include_empty_dirs=settings.include_empty_dirs,
                size_unit=settings.size_unit,
                verify=settings.verify_after_build and not args.no_verify,
                show_progress=not args.quiet,
            )
        except (ArchiveError, ValueError) as e:
            logger.error("Failed to create archive: %s", e)
            logger.debug("Full error details:", exc_info=True)
            return 1

        logger.debug("Final size: %d bytes", report.final_size_bytes)
        return 0

    def _list_entries(self, settings: Settings) -> int:
        enumerator = SourceEnumerator(settings.symlink_policy, settings.include_empty_dirs)
        try:
            for entry in iter_archive_entries(settings.sources, enumerator):
                print(entry.archive_path + ("/" if entry.is_dir else ""))
        except ArchiveError as e:
            logger.error("Cannot list sources: %s", e)
            return 1

        stats = enumerator.stats
        logger.info(
            "%d files (%.2f MB), %d skipped",
            stats.total_files,
            stats.total_size / (1024 * 1024),
            stats.skipped_entries,
        )
        return 0

    def _handle_info(self, args) -> int:
        """Handle the 'info' command."""
        try:
            info = ArchiveVerifier().get_archive_info(args.archive_path)
        except ArchiveError as e:
            logger.error("Failed to read archive info: %s", e)
            return 1

        logger.info("Archive: %s", info["path"])
        logger.info("Format: %s", info["format"].upper())
        logger.info("Size: %.2f MB (%d bytes)", info["size_mb"], info["size_bytes"])
        logger.info("Modified: %s", info["modified_time"])
        logger.info("Files: %d", info["file_count"])
        logger.info("Uncompressed size: %.2f MB", info["uncompressed_size"] / (1024 * 1024))
        logger.info("Compression ratio: %.1f%%", info["compression_ratio"])
        logger.info("Valid: %s", "Yes" if info["valid"] else "No")

        if args.detailed:
            logger.info("")
            logger.info("File listing:")
            for name, size in info["entries"]:
                logger.info("  %s (%.1f KB)", name, size / 1024)

        return 0 if info["valid"] else 1

    def _handle_verify(self, args) -> int:
        """Handle the 'verify' command."""
        verifier = ArchiveVerifier()
        logger.info("Verifying archive integrity: %s", args.archive_path)

        if verifier.verify_archive_integrity(args.archive_path):
            logger.success("Archive integrity check passed")
            return 0

        logger.error("Archive integrity check failed")
        return 1

    def _handle_formats(self, args) -> int:
        """Handle the 'formats' command."""
        logger.info("Supported archive formats:")
        for archive_format in ArchiveWriterFactory.get_supported_formats():
            low, high = ArchiveWriterFactory.get_level_range(archive_format)
            logger.info(
                "  %s (%s): levels %d-%d, default %d",
                archive_format.upper(),
                determine_extension(archive_format),
                low,
                high,
                ArchiveWriterFactory.DEFAULT_LEVEL[archive_format],
            )
        return 0


def main():
    """Main entry point for the CLI."""
    setup_colored_logging(level=logging.INFO)

    cli = DeployCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
