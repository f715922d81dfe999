"""I/O package for the physarum simulation."""

from .csv_writer import CSVWriter
from .visualizer import Visualizer, color_map_to_rgb8
from .reporter import Reporter

__all__ = ['CSVWriter', 'Visualizer', 'color_map_to_rgb8', 'Reporter']
