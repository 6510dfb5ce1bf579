""" Generates packed textures from per-material source maps and keeps them in sync with source folder changes. """

import asyncio
import os
import sys
import time
from typing import Optional

from backend.texture_classes import (Configuration, DestinationKey, EventKind, FileEvent, MappingRule)

from backend.io_backend import (composite_channel, copy_resized, list_folder_entries, list_material_folders,
                                recreate_folder, remove_folder)

from settings import (CHANNEL_NAMES, DEFAULT_CONFIG_PATH, load_config)

from utils import (KeyedLocks, is_hidden_path, is_image, log, resolve_mapping, split_material_folder, split_material_path)

from watcher import SourceWatcher




# Directory convention:
#   sourcePath/<material>/<file>  =>  destPath/<material>/<rule.dest>.png
#
# sources/
#     Rock/
#         Rock_ao.png         { "source": "_ao",    "dest": "Rock_ORM", "size": 1024, "channel": 0 }
#         Rock_rough.png      { "source": "_rough", "dest": "Rock_ORM", "size": 1024, "channel": 1 }
#         Rock_albedo.png     { "source": "_albedo", "dest": "Rock_BaseColor", "size": 2048 }
#
# A changed file only patches the textures it maps to.
# A removed file rebuilds its whole folder: a packed texture doesn't record which source filled which channel,
# so the only way to drop a contribution is replaying all the remaining files onto fresh textures.


#                                           === Pipeline ===


class Pipeline:
    """ Runtime state for one configuration: rebuilds, single-file dispatch and event routing. """

    def __init__(self, config: Configuration) -> None:
        self.config = config
        self._folder_locks = KeyedLocks() # Orders rebuilds and patches within one material folder.
        self._texture_locks = KeyedLocks() # Linearizes read-modify-write cycles on one DestinationKey.


# FileDispatcher:
    async def dispatch(self, filename: str, material_folder: str) -> None:
    # Packs or copies a single source file according to the first matching mapping rule.
    # Non-image files and files without a rule are skipped.
    # Waits for any rebuild of the same folder, so the file is never written into a folder being recreated.

        async with self._folder_locks.hold(material_folder):
            await self._dispatch_file(filename, material_folder)


    async def _dispatch_file(self, filename: str, material_folder: str) -> None:
    # Caller holds the folder lock.

        if not is_image(filename):
            return

        rule: Optional[MappingRule] = resolve_mapping(self.config.mapping, filename)
        if rule is None:
            return

        source_file: str = os.path.join(self.config.source_path, material_folder, filename)
        if not os.path.isfile(source_file):
            return
        # Directory entries named like images, or files removed since they were listed.

        dest_directory: str = os.path.join(self.config.dest_path, material_folder)
        dest_file: str = os.path.join(dest_directory, f"{rule.dest}.png")
        key: DestinationKey = (material_folder, rule.dest)

        async with self._texture_locks.hold(key):
            await asyncio.to_thread(os.makedirs, dest_directory, exist_ok=True)

            if rule.channel is not None:
                written = await asyncio.to_thread(composite_channel, source_file, dest_file, rule.size, rule.channel)
                channel_label = CHANNEL_NAMES[rule.channel] if rule.channel in range(len(CHANNEL_NAMES)) else str(rule.channel)
                if written:
                    log(f"  {source_file} [{channel_label}] => {rule.dest}", "info")
                elif rule.channel not in range(len(CHANNEL_NAMES)):
                    log(f"Skipped: {source_file} - channel {rule.channel} is not R/G/B.", "skip")
            else:
                written = await asyncio.to_thread(copy_resized, source_file, dest_file, rule.size)
                if written:
                    log(f"  {source_file} => {rule.dest}", "info")


# BatchProcessor:
    async def rebuild_folder(self, material_folder: str) -> None:
    # Regenerates every destination texture of a material folder from scratch, in listing order.

        folder_path: str = os.path.join(self.config.source_path, material_folder)
        dest_directory: str = os.path.join(self.config.dest_path, material_folder)

        async with self._folder_locks.hold(material_folder):
            try:
                filenames = await asyncio.to_thread(list_folder_entries, folder_path)
            except FileNotFoundError:
                await asyncio.to_thread(remove_folder, dest_directory)
                log(f"Removed: {dest_directory} (source folder '{material_folder}' no longer exists)", "warn")
                return
            except OSError as error:
                log(f"Error reading directory '{folder_path}': {error}", "error")
                return

            log(f"Process folder: {material_folder}", "info")
            try:
                await asyncio.to_thread(recreate_folder, dest_directory)
            except OSError as error:
                log(f"Error recreating '{dest_directory}': {error}", "error")
                return

            for filename in filenames:
                await self._dispatch_logged(filename, material_folder)
            # Strictly sequential, every texture reached twice in one folder sees the previous write.


    async def rebuild_all(self) -> None:
    # Rebuilds every material folder under the source root.

        start_time = time.time()
        try:
            material_folders = await asyncio.to_thread(list_material_folders, self.config.source_path)
        except OSError as error:
            log(f"Error reading directory '{self.config.source_path}': {error}", "error")
            return

        for material_folder in material_folders:
            await self.rebuild_folder(material_folder)

        log("All processing done.", "complete")
        if self.config.show_details:
            elapsed_time = time.time() - start_time
            log(f"Execution time: {elapsed_time:.2f} seconds", "info")


    async def run_full_rebuild(self) -> None:
        await self.rebuild_all()


# EventRouter:
    async def handle_event(self, event: FileEvent) -> None:
    # Added/changed files are patched individually; a removal rebuilds the folder.
    # Events for a material folder itself (created, deleted, moved in or out) rebuild that folder.
    # Never raises, a failing event must not stop the watch loop.

        try:
            material_folder: Optional[str] = split_material_folder(self.config.source_path, event.path)
            if material_folder is not None:
                if not material_folder.startswith(".") and await asyncio.to_thread(self._is_known_folder, material_folder):
                    await self.rebuild_folder(material_folder)
                return

            material_path = split_material_path(self.config.source_path, event.path)
            if material_path is None:
                return
            material_folder, filename = material_path
            if is_hidden_path(f"{material_folder}/{filename}"):
                return

            if event.kind is EventKind.REMOVED:
                await self.rebuild_folder(material_folder)
            else:
                await self.dispatch(filename, material_folder)
        except Exception as error:
            log(f"Error: {event.kind.value} '{event.path}' failed: {error}", "error")


    def _is_known_folder(self, material_folder: str) -> bool:
    # A root-level path is a material folder if it exists as a source folder, or still has generated textures.
    # Plain files at the source root have neither.
        return (os.path.isdir(os.path.join(self.config.source_path, material_folder))
                or os.path.isdir(os.path.join(self.config.dest_path, material_folder)))


    async def _dispatch_logged(self, filename: str, material_folder: str) -> None:
    # Caller holds the folder lock.
        try:
            await self._dispatch_file(filename, material_folder)
        except Exception as error:
            log(f"Error: failed to process '{os.path.join(material_folder, filename)}': {error}", "error")




#                                         === CLI entry point ===

async def run(config: Configuration) -> None:
# Full rebuild first, then watches the source folder until interrupted.

    pipeline = Pipeline(config)
    watcher = SourceWatcher(config)

    watcher.start()
    # Started before the initial rebuild, so changes made while it runs are queued instead of lost.
    try:
        await pipeline.run_full_rebuild()
        log(f"Watching: {config.source_path}", "info")
        await watcher.serve(pipeline.handle_event)
    finally:
        watcher.stop()


def main() -> None:
    cli_arg = " ".join(sys.argv[1:]).strip() or None
    # Allows a CLI path to override the default config location.
    config = load_config(cli_arg or DEFAULT_CONFIG_PATH)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        log("Stopped.", "info")

if __name__ == "__main__":
    main()
