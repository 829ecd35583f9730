"""
PNG graphs of fetched archive data.
"""

import base64
import io
from typing import Sequence

import numpy as np
import pandas as pd
from matplotlib.figure import Figure


class GraphRenderer:
    """Renders one datasource's values as a filled line chart."""

    def __init__(self, width: int = 500, height: int = 175, dpi: int = 100,
                 signature: str = "metrics history"):
        self.width = width
        self.height = height
        self.dpi = dpi
        self.signature = signature

    def render(self, title: str, timestamps: Sequence[int], values: Sequence[float]) -> str:
        """
        Render values against timestamps.

        Returns:
            Base64-encoded PNG
        """
        times = pd.to_datetime(np.asarray(timestamps, dtype=np.int64), unit='s')
        data = np.asarray(values, dtype=np.float64)

        fig = Figure(figsize=(self.width / self.dpi, self.height / self.dpi), dpi=self.dpi)
        ax = fig.subplots()
        # Undefined points leave gaps in both the area and the line
        ax.fill_between(times, data, color='#ffb860')
        ax.plot(times, data, color='red', linewidth=1.0)
        ax.set_title(title, fontsize=9)
        ax.grid(True, alpha=0.3)
        ax.tick_params(labelsize=7)
        fig.text(0.99, 0.01, self.signature, ha='right', va='bottom', fontsize=6, alpha=0.5)
        fig.autofmt_xdate()

        buffer = io.BytesIO()
        fig.savefig(buffer, format='png')
        return base64.b64encode(buffer.getvalue()).decode('ascii')
