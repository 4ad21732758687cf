import logging
import os


class SingleLineFormatter(logging.Formatter):
    """
    Formatter that keeps multi-line messages (human tick logs, atom dumps) readable by
    indenting continuation lines to the column where the message starts.
    """

    def format(self, record):
        original_message = super().format(record)

        # asctime + " - " + module (15) + " - " + levelname + " - "
        initial_indent = ' ' * (len(self.formatTime(record)) + 3 + 15 + 3 + len(record.levelname) + 3)

        return original_message.replace('\n', f'\n{initial_indent}')


def setup_logger(log_path: str, log_filename: str, level: int = logging.INFO):
    """
    Attach a file handler and a console handler to the root logger.

    Args:
        log_path (str): Directory for log files, created if missing.
        log_filename (str): Name of the log file (without the path).
        level (int): Level for both handlers.
    """
    os.makedirs(log_path, exist_ok=True)
    log_file_path = os.path.join(log_path, log_filename)

    root = logging.getLogger()
    root.setLevel(level)

    formatter = SingleLineFormatter('%(asctime)s - %(module)-15s - %(levelname)s - %(message)s')

    # avoid stacking handlers when called twice for the same file
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and os.path.abspath(h.baseFilename) == os.path.abspath(log_file_path):
            return

    file_handler = logging.FileHandler(log_file_path, mode='a', encoding='utf8')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    root.info(f"Logger initialized and logging to {log_file_path}")
