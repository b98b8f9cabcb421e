#!/usr/bin/env python3
"""
Main entry point for YATL application

This module provides the command line front end: listing releases and
installations, installing and removing games, and starting them.
"""

import argparse
import sys
import os
import logging
from pathlib import Path
from typing import List, Optional

from yatl.models.exceptions import LauncherError
from yatl.models.release import Build, GameIdentifier, Profile
from yatl.tasks.task import Task, TaskState


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="yatl", description="YATL - Yet Another Terasology Launcher")
    parser.add_argument("--base-dir", type=Path, default=None,
                        help="directory holding the launcher directory (default: home)")
    parser.add_argument("--debug", action="store_true", help="log debug messages")

    subparsers = parser.add_subparsers(dest="command", required=True)

    releases = subparsers.add_parser("releases", help="list available releases")
    releases.add_argument("--profile", type=Profile.parse, default=None,
                          help="only list releases of this profile (omega, engine)")
    releases.add_argument("--pre-releases", action="store_true", default=None,
                          help="include nightly builds")

    subparsers.add_parser("installed", help="list installed games")

    for name, help_text in (("download", "download and install a release"),
                            ("delete", "remove an installed game"),
                            ("start", "start an installed game")):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("profile", type=Profile.parse)
        command.add_argument("build", type=Build.parse)
        command.add_argument("version")
        if name == "start":
            command.add_argument("--wait", action="store_true", help="wait until the game exits")

    return parser


def _identifier(args) -> GameIdentifier:
    return GameIdentifier(args.profile, args.build, args.version)


def _wait_for_task(task: Task, logger: logging.Logger) -> int:
    task.wait()
    if task.state == TaskState.SUCCEEDED:
        return 0
    if task.state == TaskState.FAILED:
        logger.error(f"{task.kind.capitalize()} failed: {task.error}")
    else:
        logger.warning(f"{task.kind.capitalize()} {task.state.value}")
    return 1


def run_command(launcher, args, logger: logging.Logger) -> int:
    """Run one parsed command against a launcher."""
    if args.command == "releases":
        unavailable = launcher.refresh()
        for source in unavailable:
            logger.warning(f"Catalog source '{source}' is unavailable")
        include_pre_releases = args.pre_releases
        if include_pre_releases is None:
            include_pre_releases = bool(launcher.settings.read("show_pre_releases", False))
        installed = launcher.game_manager.get_installed_games()
        for release in launcher.repository.get_releases_for(args.profile, include_pre_releases):
            marker = "*" if release.id in installed else " "
            print(f"{marker} {release.id}  {release.timestamp:%Y-%m-%d}")
        return 0

    if args.command == "installed":
        for game_id in sorted(launcher.game_manager.get_installed_games(), key=str):
            print(f"{game_id}  {launcher.game_manager.get_install_directory(game_id)}")
        return 0

    game_id = _identifier(args)

    if args.command == "download":
        launcher.refresh()
        release = launcher.repository.find_release(game_id)
        if release is None:
            logger.error(f"No release found for {game_id}")
            return 1
        return _wait_for_task(launcher.download(release), logger)

    if args.command == "delete":
        return _wait_for_task(launcher.delete(game_id), logger)

    if args.command == "start":
        session = launcher.start(game_id)
        if args.wait or not launcher.settings.read("close_after_start", False):
            session.wait()
        else:
            # leave the launcher once the game process is up
            while not session.wait(0.1) and session.process is None:
                pass
        return 1 if session.error else 0

    return 1


def main(argv: Optional[List[str]] = None):
    """Main application entry point."""
    logger = None
    launcher = None
    try:
        args = build_parser().parse_args(argv)

        logger = logging.getLogger("YATL")
        logger.setLevel(logging.DEBUG if args.debug else logging.INFO)
        formatter = logging.Formatter('%(asctime)s - %(module)s [%(levelname)s] %(message)s', datefmt='%H:%M:%S')
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

        logger.info("=" * 60)
        logger.info("Starting YATL - Yet Another Terasology Launcher")
        logger.info("=" * 60)
        logger.info(f"Python version: {sys.version}")
        logger.info(f"Working directory: {os.getcwd()}")
        logger.info(f"Platform: {sys.platform}")

        from yatl.launcher import create_launcher

        launcher = create_launcher(args.base_dir, debug=args.debug)
        exit_code = run_command(launcher, args, logger)

        logger.info(f"YATL exited with code: {exit_code}")
        return exit_code

    except LauncherError as e:
        if logger:
            logger.error(str(e))
        else:
            print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        if logger:
            logger.info("Shutdown requested by user (Ctrl+C)")
        else:
            print("\nShutdown requested by user.")
        return 0
    except Exception as e:
        if logger:
            logger.error(f"Unexpected error in main: {e}", exc_info=True)
        else:
            print(f"Unexpected error: {e}")
        return 1
    finally:
        if launcher:
            from yatl.launcher import shutdown_launcher
            shutdown_launcher(launcher)
        if logger:
            logger.info("YATL main function completed")
            logger.info("=" * 60)


if __name__ == "__main__":
    sys.exit(main())
