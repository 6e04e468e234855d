"""
Progress Display Components

Contains renderers for different output formats and environments.
"""

from sf_connector.progress.display.rich_renderer import RichProgressRenderer
from sf_connector.progress.display.tqdm_renderer import TqdmProgressRenderer

__all__ = [
    'RichProgressRenderer',
    'TqdmProgressRenderer',
]
