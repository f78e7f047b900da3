"""
Data Export
===========

Handles export of simulation result series.

CSV output is deterministic: a fixed header, a fixed column order, fixed
decimal precision and ``\\n`` line endings, so identical runs export to
identical bytes.

Classes:
    DataExporter: Main data export class
"""

import io
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..errors import NoResultsError

# Sample field -> CSV column, in export order
COLUMNS = {
    'time_s': 'Time_s',
    'position_m': 'Position_m',
    'speed_mps': 'Speed_m_s',
    'acceleration_mps2': 'Acceleration_m_s2',
    'tractive_force_n': 'Tractive_Force_N',
    'power_w': 'Power_W',
    'line_current_a': 'Line_Current_A',
    'energy_j': 'Energy_J',
    'regenerated_energy_j': 'Regenerated_Energy_J',
}
FLOAT_FORMAT = '%.6f'

J_PER_KWH = 3.6e6


class DataExporter:
    """Main data export class"""

    def __init__(self, export_dir: Optional[Union[str, Path]] = None):
        """
        Initialize data exporter

        Args:
            export_dir: Default directory for written files
        """
        self.export_dir = Path(export_dir) if export_dir else Path("exports")

    @staticmethod
    def to_dataframe(samples: Sequence[Any]) -> pd.DataFrame:
        """Tabulate samples (records with ``to_dict()`` or plain mappings)"""
        rows = [s.to_dict() if hasattr(s, 'to_dict') else dict(s) for s in samples]
        df = pd.DataFrame(rows, columns=list(COLUMNS))
        return df.rename(columns=COLUMNS)

    def export_csv(self, samples: Sequence[Any]) -> bytes:
        """
        Render samples as CSV

        Args:
            samples: Ordered sample series

        Returns:
            UTF-8 encoded CSV content

        Raises:
            NoResultsError: if there are no samples
        """
        if not samples:
            raise NoResultsError("No simulation results to export")

        buffer = io.StringIO()
        self.to_dataframe(samples).to_csv(
            buffer, index=False, float_format=FLOAT_FORMAT, lineterminator='\n')
        return buffer.getvalue().encode('utf-8')

    @staticmethod
    def read_csv(content: Union[bytes, str]) -> pd.DataFrame:
        """Parse exported CSV content back into a dataframe"""
        if isinstance(content, bytes):
            content = content.decode('utf-8')
        return pd.read_csv(io.StringIO(content))

    def summarize(self, samples: Sequence[Any]) -> Dict[str, float]:
        """
        Compute run metrics from a sample series

        Returns:
            Dictionary of travel time, distance, speed and energy figures

        Raises:
            NoResultsError: if there are no samples
        """
        if not samples:
            raise NoResultsError("No simulation results to summarize")

        df = self.to_dataframe(samples)
        distance_m = float(df['Position_m'].iloc[-1] - df['Position_m'].iloc[0])
        consumed_kwh = float(df['Energy_J'].iloc[-1]) / J_PER_KWH
        regenerated_kwh = float(df['Regenerated_Energy_J'].iloc[-1]) / J_PER_KWH
        net_kwh = consumed_kwh - regenerated_kwh

        return {
            'travel_time_s': float(df['Time_s'].iloc[-1]),
            'distance_m': distance_m,
            'max_speed_mps': float(df['Speed_m_s'].max()),
            'average_speed_mps': float(np.mean(df['Speed_m_s'])),
            'consumed_energy_kwh': consumed_kwh,
            'regenerated_energy_kwh': regenerated_kwh,
            'net_energy_kwh': net_kwh,
            'specific_energy_kwh_per_km': net_kwh / (distance_m / 1000.0) if distance_m > 0 else 0.0,
            'max_tractive_force_n': float(df['Tractive_Force_N'].max()),
            'max_power_w': float(df['Power_W'].max()),
            'sample_count': int(len(df)),
        }

    def export_summary_json(self, samples: Sequence[Any], run_id: str) -> str:
        """Summary metrics of a run as a JSON document"""
        export_data = {
            'metadata': {
                'run_id': run_id,
                'export_timestamp': datetime.now().isoformat(),
                'data_format_version': '1.0'
            },
            'summary': self.summarize(samples),
        }
        return json.dumps(export_data, indent=2)

    def write_run_files(self, samples: Sequence[Any], run_id: str,
                        output_dir: Optional[Union[str, Path]] = None) -> Dict[str, str]:
        """
        Write the CSV series and JSON summary of a run

        Args:
            samples: Ordered sample series
            run_id: Run identifier used in the file names
            output_dir: Target directory (defaults to the export directory)

        Returns:
            Dictionary with paths to generated files
        """
        target = Path(output_dir) if output_dir else self.export_dir
        target.mkdir(parents=True, exist_ok=True)
        stem = f"run_{run_id[:8]}"

        csv_path = target / f"{stem}.csv"
        csv_path.write_bytes(self.export_csv(samples))

        summary_path = target / f"{stem}_summary.json"
        summary_path.write_text(self.export_summary_json(samples, run_id), encoding='utf-8')

        return {'csv': str(csv_path.absolute()), 'summary': str(summary_path.absolute())}
