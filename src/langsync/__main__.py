"""Entry point: python -m langsync <project-path> | list [dir]

- <project-path>: load the project and keep it in sync until SIGINT/SIGTERM
- list [dir]:     print every *.inlang project below dir (default: cwd)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from langsync.config import LangsyncConfig, load_config

logger = logging.getLogger("langsync")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def _serve(project_path: str, config: LangsyncConfig) -> None:
    from langsync.fs.local import LocalFilesystem
    from langsync.project import load_project

    fs = LocalFilesystem(
        watch_backend=config.watch.backend, poll_interval=config.watch.poll_interval
    )
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    project = await load_project(project_path, fs, config=config)
    async with project:
        settings = project.settings.get()
        logger.info(
            "Project %s ready: %d messages, languages %s",
            project.project_path,
            len(project.query.messages),
            ",".join(settings.language_tags) if settings else "-",
        )

        def report(errors: list[Exception]) -> None:
            if errors:
                logger.warning("%d project errors, latest: %s", len(errors), errors[-1])

        unsubscribe = project.errors.subscribe(report)
        try:
            await shutdown.wait()
        finally:
            unsubscribe()
            logger.info("Shutting down...")


async def _list(start: str) -> None:
    from langsync.discovery import list_projects
    from langsync.fs.local import LocalFilesystem

    for path in await list_projects(LocalFilesystem(), start):
        print(path)


def main() -> None:
    args = sys.argv[1:]
    if not args or args[0] in ("-h", "--help"):
        print("Usage: python -m langsync <project-path> | list [dir]")
        print("  <project-path>  Load an absolute *.inlang project path and keep it in sync")
        print("  list [dir]      Find *.inlang projects below dir")
        sys.exit(0 if args else 1)

    config = load_config()
    _setup_logging(config.log_level)

    if args[0] == "list":
        start = os.path.abspath(args[1] if len(args) > 1 else os.getcwd())
        asyncio.run(_list(start))
        return

    try:
        asyncio.run(_serve(os.path.abspath(args[0]), config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
