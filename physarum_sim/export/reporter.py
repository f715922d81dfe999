"""Summary report generation for the physarum simulation."""

from typing import List, Dict, Optional, TYPE_CHECKING
from pathlib import Path

if TYPE_CHECKING:
    from ..model.state import FrameSnapshot


class Reporter:
    """Generates summary statistics and formatted text report."""

    def __init__(self, config_path: str, seed: Optional[int],
                 frame_budget: Optional[float] = None):
        self.config_path = config_path
        self.seed = seed
        self.frame_budget = frame_budget  # seconds per presented frame
        self.frame_metrics: List[Dict] = []
        self.frame_times: List[float] = []
        self.peak_off_field = 0
        self.peak_trail = 0.0
        self.over_budget_frames = 0

    def update(self, snapshot: "FrameSnapshot", frame_seconds: float = 0.0) -> None:
        """Accumulate metrics per frame."""
        self.frame_metrics.append(snapshot.to_csv_row())
        self.frame_times.append(frame_seconds)

        if snapshot.off_field > self.peak_off_field:
            self.peak_off_field = snapshot.off_field
        if snapshot.total_trail > self.peak_trail:
            self.peak_trail = snapshot.total_trail

        # Frames that could not have been presented in real time
        if self.frame_budget and frame_seconds > self.frame_budget:
            self.over_budget_frames += 1

    def generate_summary(self, final_snapshot: "FrameSnapshot",
                         output_dir: Path,
                         csv_enabled: bool,
                         snapshot_enabled: bool,
                         gif_enabled: bool) -> str:
        """Returns formatted text report."""
        frames = len(self.frame_times)
        mean_ms = (sum(self.frame_times) / frames * 1000) if frames else 0.0
        max_ms = max(self.frame_times) * 1000 if frames else 0.0
        budget = (f"{self.frame_budget * 1000:.1f} ms" if self.frame_budget
                  else "(none)")

        lines = [
            "",
            "=" * 80,
            "                    PHYSARUM SIMULATION REPORT",
            "=" * 80,
            f"Configuration: {self.config_path}",
            f"Random Seed: {self.seed if self.seed is not None else 'None (random)'}",
            "",
            "SIMULATION METRICS",
            "-" * 40,
            f"Frames Presented:      {final_snapshot.frame}",
            f"Total Steps:           {final_snapshot.steps}",
            f"Simulated Time:        {final_snapshot.elapsed_time:.3f} s",
            f"Agents:                {final_snapshot.agent_count}",
            f"Agents Off Field:      {final_snapshot.off_field} (peak {self.peak_off_field})",
            f"Total Trail:           {final_snapshot.total_trail:.3f} (peak {self.peak_trail:.3f})",
            "",
            "PERFORMANCE",
            "-" * 40,
            f"Frame Budget:          {budget}",
            f"Mean Frame Time:       {mean_ms:.2f} ms",
            f"Max Frame Time:        {max_ms:.2f} ms",
            f"Frames Over Budget:    {self.over_budget_frames} / {frames}",
            "",
            "OUTPUT FILES",
            "-" * 40,
        ]

        # Output file paths
        if csv_enabled:
            lines.append(f"CSV Log:    {output_dir / 'frame_log.csv'}")
        else:
            lines.append("CSV Log:    (disabled)")

        if snapshot_enabled:
            lines.append(f"Snapshot:   {output_dir / 'final_frame.png'}")
        else:
            lines.append("Snapshot:   (disabled)")

        if gif_enabled:
            lines.append(f"Animation:  {output_dir / 'simulation.gif'}")
        else:
            lines.append("Animation:  (disabled)")

        lines.append("=" * 80)

        return "\n".join(lines)
