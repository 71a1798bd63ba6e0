"""
Crosswalk Pipeline Orchestrator

Orchestration layer for the workflow from loading matched comparisons
through fitting, adjusting raw observations and exporting results.
"""

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from typing import Dict, Optional, Any
from pathlib import Path

from .adjust import Adjuster
from .config import CrosswalkConfig
from .data import CWData
from .logger import configure_logging_from_config, get_logger, log_stage
from .model import CWModel
from .models.results import FittedModel

logger = get_logger(__name__)


class CrosswalkPipeline:
    """
    Orchestrates the complete crosswalk workflow.

    Example:
        >>> config = CrosswalkConfig.from_yaml('crosswalk.yaml')
        >>> pipeline = CrosswalkPipeline(config)
        >>> pipeline.load_data()
        >>> pipeline.fit()
        >>> pipeline.adjust()
        >>> pipeline.export_all()
    """

    def __init__(self, config: CrosswalkConfig):
        """
        Initialize pipeline with configuration.

        Args:
            config: CrosswalkConfig object
        """
        self.config = config
        self.verbose = config.verbose
        configure_logging_from_config(config)

        self.cwdata: Optional[CWData] = None
        self.raw_df: Optional[pd.DataFrame] = None
        self.fitted: Optional[FittedModel] = None
        self.adjusted: Optional[pd.DataFrame] = None

        self.state = {
            'data_loaded': False,
            'model_fitted': False,
            'observations_adjusted': False,
            'results_exported': False,
        }

        Path(self.config.output.output_dir).mkdir(parents=True, exist_ok=True)

        if self.verbose:
            logger.info("=" * 70)
            logger.info("CROSSWALK PIPELINE INITIALIZED")
            logger.info("=" * 70)
            logger.info(self.config.summary())

    def load_data(self) -> None:
        """Load the matched comparisons (and raw observations, if configured)."""
        if self.state['data_loaded']:
            logger.info("[INFO] Data already loaded, skipping")
            return

        with log_stage(logger, "STAGE 1: LOADING DATA"):
            data_config = self.config.data
            df = pd.read_csv(data_config.source)
            self.cwdata = CWData(
                df,
                data_config.roles,
                delimiter=data_config.delimiter,
                definitions=data_config.definitions
            )

            if self.config.adjust is not None:
                self.raw_df = pd.read_csv(self.config.adjust.source)
                logger.info(f"  Raw observations: {len(self.raw_df):,} rows")

        self.state['data_loaded'] = True
        if self.verbose:
            logger.info(self.cwdata.summary())

    def fit(self) -> FittedModel:
        """Fit the crosswalk model."""
        if not self.state['data_loaded']:
            raise RuntimeError("Must call load_data() before fit()")

        if self.state['model_fitted']:
            logger.info("[INFO] Model already fitted, skipping")
            return self.fitted

        with log_stage(logger, "STAGE 2: FITTING CROSSWALK MODEL"):
            self.fitted = CWModel(self.cwdata, self.config.fit_params).fit()
        self.state['model_fitted'] = True
        return self.fitted

    def adjust(self) -> pd.DataFrame:
        """Adjust the configured raw observations with the fitted model."""
        if not self.state['model_fitted']:
            raise RuntimeError("Must call fit() before adjust()")
        if self.config.adjust is None:
            raise RuntimeError("No raw observations configured; set CrosswalkConfig.adjust")

        with log_stage(logger, "STAGE 3: ADJUSTING OBSERVATIONS"):
            self.adjusted = Adjuster(self.fitted).adjust(self.raw_df, self.config.adjust.roles)
        self.state['observations_adjusted'] = True
        return self.adjusted

    def export_all(self) -> Dict[str, str]:
        """
        Write the fixed-effects table, the fitted model and (if available)
        the adjusted observations in the configured output formats.

        Returns:
            Dictionary mapping output kind to file path
        """
        if not self.state['model_fitted']:
            raise RuntimeError("Must call fit() before export_all()")

        output = self.config.output
        output_dir = Path(output.output_dir)
        paths = {}

        with log_stage(logger, "STAGE 4: EXPORTING RESULTS"):
            if 'csv' in output.output_formats:
                fixed_effects_path = output_dir / output.fixed_effects_name
                self.fitted.fixed_effects_table().to_csv(fixed_effects_path, index=False)
                paths['fixed_effects'] = str(fixed_effects_path)

                if self.adjusted is not None:
                    adjusted_path = output_dir / output.adjusted_name
                    self._adjusted_table().to_csv(adjusted_path, index=False)
                    paths['adjusted'] = str(adjusted_path)

            if 'json' in output.output_formats:
                model_path = output_dir / output.model_name
                self.fitted.to_json(str(model_path))
                paths['model'] = str(model_path)

            if 'excel' in output.output_formats:
                report_path = output_dir / output.report_name
                self._export_excel_report(report_path)
                paths['excel_report'] = str(report_path)

            for kind, path in paths.items():
                logger.info(f"  {kind}: {path}")

        self.state['results_exported'] = True
        return paths

    def _adjusted_table(self) -> pd.DataFrame:
        """Raw observations with the adjusted columns appended."""
        raw = self.raw_df.reset_index(drop=True)
        return pd.concat([raw, self.adjusted.drop(columns=['row_id'])], axis=1)

    def _export_excel_report(self, path: Path) -> None:
        """
        Workbook with a fit summary sheet, the fixed effects and (if
        available) the adjusted observations.
        """
        if self.verbose:
            logger.info(f"Generating Excel report: {path}")

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Fit Summary"

        transform = self.fitted.transform_kind
        ws['A1'] = f"Crosswalk Fit - gold definition '{self.fitted.gold_definition}'"
        ws['A1'].font = Font(bold=True, size=14)
        ws.merge_cells('A1:D1')

        n_inliers = sum(self.fitted.inlier_mask) if self.fitted.inlier_mask else self.fitted.n_observations
        summary_rows = [
            ("Transform", str(getattr(transform, 'value', transform))),
            ("Heterogeneity (gamma)", self.fitted.heterogeneity_variance),
            ("Matched pairs", self.fitted.n_observations),
            ("Inliers", n_inliers),
            ("Definitions", ", ".join(self.fitted.definition_registry)),
            ("Converged", "Yes" if self.fitted.converged else "No"),
        ]
        for row_idx, (label, value) in enumerate(summary_rows, 3):
            ws.cell(row_idx, 1, label).font = Font(bold=True)
            ws.cell(row_idx, 2, value)

        self._write_sheet(wb.create_sheet("Fixed Effects"), self.fitted.fixed_effects_table())
        if self.adjusted is not None:
            self._write_sheet(wb.create_sheet("Adjusted Observations"), self._adjusted_table())

        for sheet in wb.worksheets:
            for col in sheet.iter_cols():
                width = max((len(str(cell.value)) for cell in col if cell.value is not None), default=8)
                sheet.column_dimensions[get_column_letter(col[0].column)].width = width + 2

        wb.save(path)
        if self.verbose:
            logger.info(f"  Excel report created: {path}")

    @staticmethod
    def _write_sheet(ws, table: pd.DataFrame) -> None:
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        for col, header in enumerate(table.columns, 1):
            cell = ws.cell(1, col, str(header))
            cell.font = Font(bold=True, color="FFFFFF")
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal='center')

        for row_idx, row in enumerate(table.itertuples(index=False), 2):
            for col, value in enumerate(row, 1):
                if pd.isna(value):
                    value = None
                elif hasattr(value, 'item'):
                    value = value.item()
                ws.cell(row_idx, col, value)

    def run_all(self) -> Dict[str, str]:
        """Run every stage in order."""
        self.load_data()
        self.fit()
        if self.config.adjust is not None:
            self.adjust()
        return self.export_all()

    def get_state(self) -> Dict[str, Any]:
        """Current stage flags and headline results."""
        state: Dict[str, Any] = dict(self.state)
        if self.fitted is not None:
            state['heterogeneity_variance'] = self.fitted.heterogeneity_variance
            state['n_fixed_effects'] = len(self.fitted.fixed_effects)
        if self.adjusted is not None:
            state['n_adjusted'] = len(self.adjusted)
        return state
