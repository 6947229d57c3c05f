"""
Logging for the LaoBus API process
"""

import logging
import os
import sys
from typing import Dict, Optional, Tuple

CONSOLE_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
FILE_FORMAT = '%(asctime)s [%(levelname)s] %(name)s %(module)s:%(lineno)d: %(message)s'


class LaoBusLogger:
    """Named logger with stdout output and an optional debug-level log file"""

    def __init__(self, name: str = "laobus", level: int = logging.INFO, log_file: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Module reloads and repeated app factories reuse the same named logger
        if not self.logger.handlers:
            self._attach_handlers(level, log_file)

    def _attach_handlers(self, level: int, log_file: Optional[str]):
        stdout = logging.StreamHandler(sys.stdout)
        stdout.setLevel(level)
        stdout.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        self.logger.addHandler(stdout)

        if log_file:
            os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
            to_file = logging.FileHandler(log_file)
            to_file.setLevel(logging.DEBUG)
            to_file.setFormatter(logging.Formatter(FILE_FORMAT))
            self.logger.addHandler(to_file)

    def info(self, message: str):
        self.logger.info(message)

    def error(self, message: str):
        self.logger.error(message)

    def log_graph_build(self, source: str, stops: int, edge_types: Dict[str, int]):
        """One line per graph generation: where it came from and what it holds"""
        self.info(f"Graph built from {source}: {stops} stops, "
                  f"{edge_types.get('transit', 0)} bus edges, {edge_types.get('transfer', 0)} walking edges")

    def log_route_request(self, origin: Tuple[float, float], destination: Tuple[float, float],
                          outcome: str, duration_ms: float, success: bool):
        """Trip requests that end in a RouteError code are logged at warning level"""
        level = logging.INFO if success else logging.WARNING
        self.logger.log(level, f"Route {origin[0]:.5f},{origin[1]:.5f} -> "
                               f"{destination[0]:.5f},{destination[1]:.5f}: {outcome} in {duration_ms:.1f}ms")


def get_logger(name: str = "laobus", level: str = "INFO", log_file: Optional[str] = None) -> LaoBusLogger:
    """LaoBusLogger from the textual LOG_LEVEL / LOG_FILE settings"""
    return LaoBusLogger(name, getattr(logging, level.upper(), logging.INFO), log_file)
