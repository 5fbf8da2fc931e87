import logging
import os


def configure_logging(log_dir=None, console_level=logging.INFO):
    """Configure logging for the lanelet_fusion package.

    - Console: console_level and above
    - File (only when log_dir is given): DEBUG and above -> {log_dir}/fusion.log (append mode)
    """
    root = logging.getLogger("lanelet_fusion")
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir is None:
        return root

    os.makedirs(log_dir, exist_ok=True)
    file_handler = logging.FileHandler(
        os.path.join(log_dir, "fusion.log"), mode="a"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return root
