# main_qt.py
# Version 01.00.00.00 dated 20251018
# Headless entry point: drives ImportController from the command line

import argparse
import json
import os
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

# Logging setup (must be first!)
from logging_config import setup_logging, get_logger, disable_external_logging
from settings_manager_qt import get_settings

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="camporter", description="Import photos and videos from removable media")
    parser.add_argument("--log-level", default=None, help="Console log level (default: from settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("devices", help="List removable devices")

    p = sub.add_parser("unmount", help="Safely eject a device")
    p.add_argument("mount_path")

    p = sub.add_parser("scan", help="List media files on a device")
    p.add_argument("mount_path")
    p.add_argument("--json", action="store_true", help="Print records as JSON")

    p = sub.add_parser("check", help="Flag files that already exist at the destination")
    p.add_argument("destination")
    p.add_argument("files", nargs="+")

    p = sub.add_parser("thumbnail", help="Print a preview data URI")
    p.add_argument("path")

    sub.add_parser("tools", help="Report ffmpeg/ffprobe availability for video previews")

    p = sub.add_parser("import", help="Copy files to the destination")
    p.add_argument("files", nargs="+")
    p.add_argument("--dest", default=None, help="Destination folder (default: last used)")
    return parser


def _find_device(controller, mount_path: str):
    target = os.path.normpath(mount_path)
    for device in controller.list_devices():
        if os.path.normpath(device.mount_path) == target:
            return device
    return None


def run_command(args, app: QCoreApplication) -> int:
    from controllers.import_controller import ImportController
    from services.errors import ImportEngineError

    controller = ImportController()
    state = {"exit_code": 0}

    def finish(code: int = 0):
        state["exit_code"] = code
        app.quit()

    def fail(error: dict):
        print(f"Error [{error.get('kind')}]: {error.get('message')}", file=sys.stderr)
        finish(1)

    try:
        if args.command == "devices":
            for device in controller.list_devices():
                print(f"{device.label}\t{device.mount_path}\t{device.device_type}\t{device.device_id}")
            return 0

        if args.command == "unmount":
            device = _find_device(controller, args.mount_path)
            if device is None:
                print(f"No removable device mounted at {args.mount_path}", file=sys.stderr)
                return 1
            controller.unmount(device)
            print(f"Unmounted {device.label}")
            return 0

        if args.command == "tools":
            from utils.ffmpeg_check import check_ffmpeg_availability
            ffmpeg_ok, _, message = check_ffmpeg_availability()
            print(message)
            return 0 if ffmpeg_ok else 1

        if args.command == "check":
            candidates = [(path, os.path.getsize(path)) for path in args.files]
            for (path, _), exists in zip(candidates, controller.check_existing(candidates, args.destination)):
                print(f"{'EXISTS' if exists else 'new'}\t{path}")
            return 0
    except ImportEngineError as e:
        print(f"Error [{e.kind}]: {e.message}", file=sys.stderr)
        return 1

    if args.command == "scan":
        def on_files(files):
            for f in files:
                print(json.dumps(f.to_dict()) if args.json else f"{f.size:>12}  {f.path}")
            finish(0)
        controller.scan_finished.connect(on_files)
        controller.scan_failed.connect(fail)
        controller.scan_device(args.mount_path)

    elif args.command == "thumbnail":
        controller.thumbnail_ready.connect(lambda path, uri: (print(uri), finish(0)))
        controller.thumbnail_failed.connect(lambda path, error: fail(error))
        controller.request_thumbnail(args.path)

    elif args.command == "import":
        destination = args.dest or controller.load_destination_path()
        if not destination:
            print("No destination given and none saved (use --dest)", file=sys.stderr)
            return 2
        controller.save_destination_path(destination)
        controller.import_progress.connect(print)
        controller.transfer_finished.connect(lambda result: finish(0 if result.failed_count == 0 else 1))
        controller.transfer_failed.connect(fail)
        # Ctrl+C cancels the copy cleanly instead of killing mid-file
        signal.signal(signal.SIGINT, lambda *_: controller.cancel_transfer())
        controller.start_transfer(args.files, destination)

    # Let Python handle signals while the Qt loop runs
    timer = QTimer()
    timer.timeout.connect(lambda: None)
    timer.start(200)

    app.exec()
    controller.thumbnail_service.shutdown(wait=False)
    return state["exit_code"]


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(log_level=args.log_level or settings.get("log_level", "INFO"))
    disable_external_logging()  # Reduce Qt/PIL noise

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("Camporter")
    return run_command(args, app)


if __name__ == "__main__":
    sys.exit(main())
