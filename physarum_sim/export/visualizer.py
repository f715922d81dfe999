"""Headless presentation of the color map: PNG snapshots and animated GIFs."""

import numpy as np
import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend
import matplotlib.pyplot as plt
from pathlib import Path
from typing import List, TYPE_CHECKING
from PIL import Image

if TYPE_CHECKING:
    from ..model.state import FrameSnapshot


def color_map_to_rgb8(color_map: np.ndarray) -> np.ndarray:
    """
    Convert an (H, W, 4) float color map to (H, W, 3) uint8.

    Row 0 of the field is the bottom of the image.
    """
    rgb = np.clip(np.asarray(color_map)[..., :3], 0.0, 1.0)
    return (np.flipud(rgb) * 255.0 + 0.5).astype(np.uint8)


class Visualizer:
    """
    Generates visual outputs from presented color maps.

    Supports:
    - Single PNG snapshots (matplotlib figure with frame info)
    - Animated GIF compilation (raw color map frames)
    """

    def __init__(self):
        self.frames: List[Image.Image] = []

    def _create_figure(self, color_map: np.ndarray,
                       snapshot: "FrameSnapshot") -> plt.Figure:
        """Create matplotlib figure for a presented frame."""
        height, width = color_map.shape[:2]
        aspect = width / height
        fig_height = 6
        fig_width = max(8, fig_height * aspect)
        fig, ax = plt.subplots(figsize=(fig_width, fig_height))

        rgb = np.clip(color_map[..., :3], 0.0, 1.0)
        ax.imshow(rgb, origin='lower', aspect='equal',
                  extent=[0, width, 0, height])

        ax.set_title(f'Frame {snapshot.frame} | Steps: {snapshot.steps} | '
                     f'Agents: {snapshot.agent_count} | Off field: {snapshot.off_field}')
        ax.set_xlabel('X')
        ax.set_ylabel('Y')
        ax.set_xlim(0, width)
        ax.set_ylim(0, height)

        plt.tight_layout()
        return fig

    def buffer_frame(self, color_map: np.ndarray) -> None:
        """Store frame for GIF generation."""
        self.frames.append(Image.fromarray(color_map_to_rgb8(color_map)))

    def save_snapshot(self, color_map: np.ndarray, snapshot: "FrameSnapshot",
                      output_path: Path) -> None:
        """Save single PNG image of a presented frame."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig = self._create_figure(color_map, snapshot)
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

    def generate_gif(self, output_path: Path, fps: int = 10) -> None:
        """Compile buffered frames into animated GIF."""
        if not self.frames:
            return

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        duration = int(1000 / fps)  # milliseconds per frame

        self.frames[0].save(
            output_path,
            save_all=True,
            append_images=self.frames[1:],
            duration=duration,
            loop=0
        )

    def clear_frames(self) -> None:
        """Clear buffered frames."""
        self.frames.clear()
