"""
Streamlit page for the London crime forecasting walkthrough.

Run with: streamlit run london_crime/app.py
"""
import streamlit as st
import pandas as pd
from datetime import datetime
from pathlib import Path

# Add project root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from london_crime.utils.config import DEFAULT_FORECAST_CONFIG, ForecastConfig
from london_crime.utils.exceptions import CrimeAnalysisError
from london_crime.utils.export import ReportExporter
from london_crime.utils.logging_config import setup_logging
from london_crime.utils.settings import settings
from london_crime.walkthrough import BurglaryWalkthrough

setup_logging(level=settings.log_level, log_format=settings.log_format, log_file=settings.log_file)

# Page configuration
st.set_page_config(
    page_title="London Crime Forecasting",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .stApp {
        background-color: #f5f7fa;
    }
    .main .block-container {
        padding: 2rem 3rem;
        max-width: 1400px;
    }
    .main-header {
        font-size: 1.8rem;
        font-weight: 600;
        color: #1a1a2e !important;
        margin-bottom: 0.25rem;
    }
    .sub-header {
        color: #6b7280 !important;
        margin-bottom: 1.5rem;
    }
</style>
""", unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables."""
    if "walkthrough" not in st.session_state:
        st.session_state.walkthrough = None
    if "completed" not in st.session_state:
        st.session_state.completed = set()


def _done(step: str) -> bool:
    return step in st.session_state.completed


def _run_step(step: str, label: str, func):
    """Run one walkthrough step and report failures in the page."""
    try:
        with st.spinner(label):
            result = func()
        st.session_state.completed.add(step)
        return result
    except CrimeAnalysisError as e:
        st.error(f"❌ {e.user_message}")
        st.caption(e.message)
        return None


def sidebar_config() -> dict:
    """Data source and model settings."""
    st.sidebar.markdown("## ⚙️ Settings")

    source = st.sidebar.radio(
        "Data source",
        ["Sample data", "Download London export"],
        help="The public export is a large CSV; sample data runs offline."
    )

    category = st.sidebar.text_input("Crime category", value=settings.forecast_category)
    test_months = st.sidebar.slider("Months held out for comparison", 6, 24, settings.test_months)
    include_auto = st.sidebar.checkbox(
        "Include auto_arima",
        value=True,
        help="pmdarima's stepwise search; the slowest model"
    )

    st.sidebar.markdown("### Manual AIC search bounds")
    max_p = st.sidebar.slider("max p", 0, 3, DEFAULT_FORECAST_CONFIG.max_p)
    max_q = st.sidebar.slider("max q", 0, 3, DEFAULT_FORECAST_CONFIG.max_q)
    seasonal_search = st.sidebar.checkbox("Search seasonal orders (P, D, Q ≤ 1)", value=True)

    return {
        "use_sample": source == "Sample data",
        "config": ForecastConfig(
            category=category,
            test_months=test_months,
            max_p=max_p,
            max_q=max_q,
            max_P=1 if seasonal_search else 0,
            max_D=1 if seasonal_search else 0,
            max_Q=1 if seasonal_search else 0,
        ),
        "include_auto": include_auto,
    }


def data_section(options: dict):
    """Step 1-3: load, validate, aggregate."""
    st.markdown("## 1️⃣ Data")
    st.markdown(
        "The Metropolitan Police publishes monthly counts per ward and crime category. "
        "Each row of the export is one ward and minor category, with one column per month. "
        "We reshape it to one row per ward, category and month, then sum to a city-wide series."
    )

    if st.button("📥 Load data", type="primary"):
        st.session_state.walkthrough = BurglaryWalkthrough(
            config=options["config"],
            use_sample=options["use_sample"]
        )
        st.session_state.completed = set()
        wt = st.session_state.walkthrough
        if _run_step("load_data", "Loading export...", wt.load_data) is not None:
            _run_step("validate", "Validating...", wt.validate)
        if _done("validate"):
            _run_step("aggregate", "Aggregating...", wt.aggregate)

    wt = st.session_state.walkthrough
    if wt is None or not _done("aggregate"):
        st.info("👆 Load the data to start")
        return

    summary = wt.validation.summary
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Rows (long)", f"{summary['total_rows']:,}")
    col2.metric("Wards", summary["wards"])
    col3.metric("Boroughs", summary["boroughs"])
    col4.metric("Months", f"{summary['date_range']['start']} to {summary['date_range']['end']}")

    for issue in wt.validation.warnings:
        st.warning(str(issue))

    with st.expander("Long table preview"):
        st.dataframe(wt.long.head(50), use_container_width=True)

    st.markdown(f"### {wt.config.category}: city-wide monthly series")
    col1, col2 = st.columns(2)
    col1.metric("Total incidents", f"{int(wt.series.sum()):,}")
    col2.metric("Monthly average", f"{wt.series.mean():,.0f}")


def exploration_section():
    """Step 4: exploration figures."""
    wt = st.session_state.walkthrough
    if wt is None or not _done("aggregate"):
        return

    st.markdown("## 2️⃣ Exploration")
    if not _done("explore"):
        _run_step("explore", "Building charts...", wt.explore)
    if not _done("explore"):
        return

    figures = wt.figures
    st.plotly_chart(figures["category_totals"], use_container_width=True)

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(figures["borough_ranking"], use_container_width=True)
    with col2:
        st.plotly_chart(figures["category_share"], use_container_width=True)

    st.plotly_chart(figures["borough_vs_city"], use_container_width=True)
    st.markdown(
        "A heatmap by month and year makes both the long-run level and the annual "
        "cycle visible at once."
    )
    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(figures["heatmap"], use_container_width=True)
    with col2:
        st.plotly_chart(figures["seasonal_profile"], use_container_width=True)
    st.plotly_chart(figures["year_over_year"], use_container_width=True)


def decomposition_section():
    """Step 5: decomposition, ADF and ACF/PACF."""
    wt = st.session_state.walkthrough
    if wt is None or not _done("aggregate"):
        return

    st.markdown("## 3️⃣ Structure of the series")
    st.markdown(
        "Only the training months are used from here on, so the held-out year stays unseen "
        "until the comparison."
    )
    if not _done("decompose"):
        _run_step("decompose", "Decomposing...", wt.decompose)
    if not _done("decompose"):
        return

    summary = wt.decomposition_summary
    st.plotly_chart(wt.figures["decomposition"], use_container_width=True)

    col1, col2, col3 = st.columns(3)
    trend_icon = "📈" if summary["trend"]["direction"] == "increasing" else "📉"
    col1.metric("Trend change", f"{summary['trend']['change_percent']:+.1f}%", trend_icon)
    col2.metric("Seasonal strength", f"{summary['seasonality']['strength']:.2f}")
    col3.metric(
        "Peak / trough month",
        f"{summary['seasonality']['peak_month']} / {summary['seasonality']['trough_month']}"
    )

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(wt.figures["seasonal_pattern"], use_container_width=True)
    with col2:
        st.plotly_chart(wt.figures["trend"], use_container_width=True)

    st.markdown("### Stationarity (Augmented Dickey-Fuller)")
    raw = summary["stationarity"]["raw"]
    diff = summary["stationarity"]["differenced"]
    st.dataframe(pd.DataFrame([
        {"series": "raw", **raw},
        {"series": "first + seasonal difference", **diff},
    ]), use_container_width=True)
    st.markdown(
        "A p-value below 0.05 rejects a unit root. Slowly decaying ACF bars on the raw series "
        "point to differencing; spikes at lag 12 in the differenced ACF suggest a seasonal MA term, "
        "and the lag where the PACF cuts off suggests the AR order."
    )
    st.plotly_chart(wt.figures["acf_pacf"], use_container_width=True)
    st.plotly_chart(wt.figures["acf_pacf_differenced"], use_container_width=True)


def models_section(options: dict):
    """Steps 6-9: fit models."""
    wt = st.session_state.walkthrough
    if wt is None or not _done("decompose"):
        return

    st.markdown("## 4️⃣ Models")
    st.markdown(
        "Exponential smoothing weights recent months more heavily; ETS adds a statistical "
        "error model and so gives proper prediction intervals. ARIMA models the series through its "
        "own lags and past errors after differencing. Models are compared on AIC within a family."
    )

    if st.button("🚀 Fit models", type="primary"):
        _run_step("fit_smoothing", "Fitting exponential smoothing...", wt.fit_smoothing)
        _run_step("fit_arima", "Fitting ARIMA / SARIMA...", wt.fit_arima)
        _run_step("search_arima", "Searching ARIMA orders by AIC...", wt.search_arima)
        if options["include_auto"]:
            _run_step("fit_auto_arima", "Running auto_arima...", wt.fit_auto_arima)
        if wt.forecasts:
            _run_step("compare", "Comparing with later actuals...", wt.compare)

    if not wt.forecasts:
        return

    fits = pd.DataFrame([
        {"model": name, "aic": result.aic, **{k: round(v, 4) for k, v in result.params.items()}}
        for name, result in wt.forecasts.items()
    ])
    st.dataframe(fits, use_container_width=True)

    for name, table in wt.search_tables.items():
        with st.expander(f"{name} table (sorted by AIC)"):
            display = table.copy()
            for col in ("order", "seasonal_order"):
                if col in display.columns:
                    display[col] = display[col].astype(str)
            st.dataframe(display, use_container_width=True)


def comparison_section():
    """Step 10: compare against held-out actuals, diagnostics and download."""
    wt = st.session_state.walkthrough
    if wt is None or not _done("compare"):
        return

    st.markdown("## 5️⃣ Forecasts vs later actuals")
    table = wt.comparison.table()
    best = table.iloc[0]

    col1, col2, col3 = st.columns(3)
    col1.metric("Best model (RMSE)", best["model"])
    col2.metric("RMSE", f"{best['rmse']:.1f}")
    col3.metric("MAPE", f"{best['mape']:.1f}%")

    st.plotly_chart(wt.figures["comparison"], use_container_width=True)
    st.dataframe(table.round(3), use_container_width=True)
    st.markdown(
        "Lowest AIC on the training data does not guarantee the best forecast: AIC rewards "
        "in-sample fit per parameter, the comparison measures out-of-sample error."
    )

    st.markdown(f"### Residual diagnostics: {best['model']}")
    diag = wt.diagnostics_summary
    col1, col2, col3 = st.columns(3)
    col1.metric("Ljung-Box p-value", f"{diag['ljung_box']['p_value']:.3f}",
                "white noise" if diag["ljung_box"]["is_white_noise"] else "autocorrelated")
    col2.metric("Shapiro p-value", f"{diag['normality']['p_value']:.3f}")
    col3.metric("Residual std", f"{diag['overall_metrics']['std']:.1f}")

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(wt.figures["residuals_over_time"], use_container_width=True)
    with col2:
        st.plotly_chart(wt.figures["residual_acf"], use_container_width=True)
    st.plotly_chart(wt.figures["residual_distribution"], use_container_width=True)

    export_section()


def export_section():
    """Download the comparison workbook."""
    wt = st.session_state.walkthrough

    st.markdown("## 💾 Report")
    buffer = ReportExporter().export_to_buffer(
        comparison=wt.comparison.table(),
        forecasts=wt.comparison.forecasts_frame(),
        series=wt.series,
        search_tables=wt.search_tables,
        title=f"London {wt.config.category}: Forecast Comparison"
    )

    st.download_button(
        label="📥 Download Excel report",
        data=buffer.getvalue(),
        file_name=f"crime_forecast_{datetime.now().strftime('%Y%m%d')}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        use_container_width=True
    )


def main():
    """Main application entry point."""
    init_session_state()

    st.markdown('<div class="main-header">London Crime Forecasting</div>', unsafe_allow_html=True)
    st.markdown(
        '<div class="sub-header">From the ward-level export to a forecast you can check '
        'against what actually happened.</div>',
        unsafe_allow_html=True
    )

    options = sidebar_config()

    data_section(options)
    exploration_section()
    decomposition_section()
    models_section(options)
    comparison_section()

    st.markdown("---")
    st.markdown(
        f"""
        <div style='text-align: center; color: #888; font-size: 0.85rem;'>
            {settings.app_name} | Data: Metropolitan Police Service via London Datastore
        </div>
        """,
        unsafe_allow_html=True
    )


if __name__ == "__main__":
    main()
