"""
Report export for the forecast comparison.

Writes a formatted Excel workbook (one sheet per table) or one CSV file
per table.
"""
import pandas as pd
from pathlib import Path
from datetime import datetime
from typing import Dict, List, Optional
import io
import logging

from london_crime.utils.config import OUTPUTS_DIR
from london_crime.utils.exceptions import ExportFormatError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ["xlsx", "csv"]


class ReportExporter:
    """
    Export walkthrough results with professional formatting.

    Creates reports with:
    - Model comparison (accuracy against held-out months)
    - Forecasts next to the actuals
    - The aggregated monthly series
    - Optional model search tables
    """

    def __init__(self, output_dir: Path = None):
        """
        Initialize exporter.

        Args:
            output_dir: Directory for output files.
        """
        self.output_dir = Path(output_dir) if output_dir else OUTPUTS_DIR
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _add_header_format(self, workbook):
        """Create header format for Excel."""
        return workbook.add_format({
            "bold": True,
            "font_color": "white",
            "bg_color": "#4472C4",
            "border": 1,
            "align": "center",
            "valign": "vcenter"
        })

    def _add_decimal_format(self, workbook):
        """Create decimal format for Excel."""
        return workbook.add_format({
            "num_format": "#,##0.00",
            "border": 1,
            "align": "center"
        })

    @staticmethod
    def _build_sheets(
        comparison: pd.DataFrame,
        forecasts: pd.DataFrame,
        series: pd.Series,
        search_tables: Dict[str, pd.DataFrame] = None
    ) -> Dict[str, pd.DataFrame]:
        """Tables to write, keyed by sheet name."""
        series_df = series.rename("count").to_frame()
        series_df.index.name = "month"

        forecasts_df = forecasts.copy()
        forecasts_df.index.name = "month"

        sheets = {
            "Comparison": comparison.reset_index(drop=True),
            "Forecasts": forecasts_df.reset_index(),
            "Series": series_df.reset_index(),
        }

        for name, table in (search_tables or {}).items():
            table = table.copy()
            # Tuples do not survive the round trip to a spreadsheet
            for col in table.columns:
                if table[col].map(lambda v: isinstance(v, tuple)).any():
                    table[col] = table[col].astype(str)
            sheets[name[:31]] = table

        return sheets

    def _write_workbook(self, target, sheets: Dict[str, pd.DataFrame], title: str):
        with pd.ExcelWriter(target, engine="xlsxwriter") as writer:
            workbook = writer.book
            header_fmt = self._add_header_format(workbook)
            decimal_fmt = self._add_decimal_format(workbook)
            title_fmt = workbook.add_format({
                "bold": True,
                "font_size": 14,
                "font_color": "#4472C4"
            })

            # Sheet 1: Summary
            summary_ws = workbook.add_worksheet("Summary")
            summary_ws.write("A1", title, title_fmt)
            summary_ws.write("A2", f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}")
            summary_ws.write("A4", "Report Contents:")
            for row, name in enumerate(sheets, start=4):
                summary_ws.write(row, 0, f"• {name}")

            comparison = sheets["Comparison"]
            if not comparison.empty and "model" in comparison.columns:
                best = comparison.iloc[0]
                summary_ws.write("C4", "Best model:", title_fmt)
                summary_ws.write("C5", str(best["model"]))
                if "rmse" in comparison.columns:
                    summary_ws.write("C6", f"RMSE: {best['rmse']:.2f}")
            summary_ws.set_column("A:A", 30)
            summary_ws.set_column("C:C", 35)

            for sheet_name, df in sheets.items():
                df.to_excel(writer, sheet_name=sheet_name, index=False)
                worksheet = writer.sheets[sheet_name]
                for col_num, value in enumerate(df.columns):
                    worksheet.write(0, col_num, value, header_fmt)
                worksheet.set_column(0, 0, 22)
                worksheet.set_column(1, max(1, len(df.columns) - 1), 14, decimal_fmt)

            # Forecast chart
            forecasts = sheets["Forecasts"]
            n_rows = len(forecasts)
            if n_rows > 0:
                chart = workbook.add_chart({"type": "line"})
                for col_idx in range(1, len(forecasts.columns)):
                    chart.add_series({
                        "name": ["Forecasts", 0, col_idx],
                        "categories": ["Forecasts", 1, 0, n_rows, 0],
                        "values": ["Forecasts", 1, col_idx, n_rows, col_idx],
                    })
                chart.set_title({"name": "Forecasts vs Actuals"})
                chart.set_x_axis({"name": "Month"})
                chart.set_y_axis({"name": "Incidents"})
                chart.set_size({"width": 720, "height": 400})
                writer.sheets["Forecasts"].insert_chart("J2", chart)

    def export(
        self,
        comparison: pd.DataFrame,
        forecasts: pd.DataFrame,
        series: pd.Series,
        search_tables: Dict[str, pd.DataFrame] = None,
        format: str = "xlsx",
        filename: str = None,
        title: str = "London Crime Forecast Report"
    ) -> List[Path]:
        """
        Export the comparison report.

        Args:
            comparison: Ranked accuracy table from ModelComparison.table().
            forecasts: Actuals next to each model's predictions.
            series: Aggregated monthly series the models were fitted on.
            search_tables: Optional extra tables (e.g. AIC search results).
            format: 'xlsx' or 'csv'.
            filename: Output filename stem.
            title: Title on the summary sheet.

        Returns:
            Paths of the written files.
        """
        format = format.lower().lstrip(".")
        if format not in SUPPORTED_FORMATS:
            raise ExportFormatError(format, SUPPORTED_FORMATS)

        stem = filename or f"crime_forecast_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        stem = Path(stem).stem
        sheets = self._build_sheets(comparison, forecasts, series, search_tables)

        if format == "xlsx":
            filepath = self.output_dir / f"{stem}.xlsx"
            self._write_workbook(filepath, sheets, title)
            logger.info(f"Exported report to: {filepath}")
            return [filepath]

        paths = []
        for sheet_name, df in sheets.items():
            slug = sheet_name.lower().replace(" ", "_")
            filepath = self.output_dir / f"{stem}_{slug}.csv"
            df.to_csv(filepath, index=False)
            paths.append(filepath)
        logger.info(f"Exported {len(paths)} CSV files to: {self.output_dir}")
        return paths

    def export_to_buffer(
        self,
        comparison: pd.DataFrame,
        forecasts: pd.DataFrame,
        series: pd.Series,
        search_tables: Optional[Dict[str, pd.DataFrame]] = None,
        title: str = "London Crime Forecast Report"
    ) -> io.BytesIO:
        """
        Export the workbook to a BytesIO buffer (for web download).
        """
        buffer = io.BytesIO()
        sheets = self._build_sheets(comparison, forecasts, series, search_tables)
        self._write_workbook(buffer, sheets, title)
        buffer.seek(0)
        return buffer
