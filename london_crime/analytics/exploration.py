"""
Exploratory views of the aggregated crime counts.
"""
import pandas as pd
import numpy as np
import plotly.graph_objects as go
import plotly.express as px
from plotly.subplots import make_subplots
from typing import Dict, List

from london_crime.analytics.decomposition import MONTH_NAMES
from london_crime.data.aggregator import CrimeAggregator

COLORS = ["#667eea", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6", "#06b6d4", "#ec4899", "#84cc16"]


class CrimeExplorer:
    """
    Plotly figures for a first look at the data before modelling.
    """

    def __init__(self, aggregator: CrimeAggregator):
        self.aggregator = aggregator

    def plot_category_totals(self, categories: List[str] = None) -> go.Figure:
        """Monthly city-wide totals, one line per major category."""
        df = self.aggregator.by_category_month()
        if categories:
            df = df[df["major_category"].isin(categories)]

        fig = px.line(
            df,
            x="month",
            y="count",
            color="major_category",
            color_discrete_sequence=COLORS,
            labels={"month": "Month", "count": "Incidents", "major_category": "Category"}
        )
        fig.update_layout(title="Monthly Incidents by Category", height=450, hovermode="x unified")
        return fig

    def plot_borough_ranking(self, category: str = None, top_n: int = 20) -> go.Figure:
        """Horizontal bar chart of boroughs by total incidents."""
        totals = self.aggregator.borough_totals(category=category).head(top_n)
        totals = totals.iloc[::-1]

        fig = go.Figure(go.Bar(
            x=totals["count"],
            y=totals["borough"],
            orientation="h",
            marker_color="#667eea",
            text=(totals["share"] * 100).round(1).astype(str) + "%",
            textposition="outside"
        ))

        label = category or "All Categories"
        fig.update_layout(
            title=f"Boroughs by Total Incidents: {label}",
            xaxis_title="Incidents",
            height=max(350, 28 * len(totals)),
            showlegend=False
        )
        return fig

    def plot_category_share(self) -> go.Figure:
        """Share of all incidents per major category."""
        totals = self.aggregator.category_totals()

        fig = go.Figure(go.Pie(
            labels=totals["major_category"],
            values=totals["count"],
            hole=0.45,
            marker=dict(colors=COLORS[:len(totals)])
        ))
        fig.update_layout(title="Share of Incidents by Category", height=400)
        return fig

    def plot_borough_vs_city(self, category: str, borough: str) -> go.Figure:
        """
        One borough against the city total on a secondary axis, to show
        whether the borough follows the city-wide pattern.
        """
        city = self.aggregator.city_series(category)
        local = self.aggregator.city_series(category, borough=borough)

        fig = make_subplots(specs=[[{"secondary_y": True}]])
        fig.add_trace(
            go.Scatter(x=city.index, y=city, name="London", line=dict(color="#667eea", width=2)),
            secondary_y=False
        )
        fig.add_trace(
            go.Scatter(x=local.index, y=local, name=borough, line=dict(color="#f59e0b", width=2)),
            secondary_y=True
        )

        fig.update_layout(title=f"{category}: {borough} vs London", height=400, hovermode="x unified")
        fig.update_yaxes(title_text="London incidents", secondary_y=False)
        fig.update_yaxes(title_text=f"{borough} incidents", secondary_y=True)
        return fig

    def plot_month_year_heatmap(self, series: pd.Series) -> go.Figure:
        """Calendar month x year heatmap of a monthly series."""
        df = pd.DataFrame({
            "year": series.index.year,
            "calendar_month": series.index.month,
            "count": series.values
        })
        grid = df.pivot_table(index="year", columns="calendar_month", values="count")
        grid = grid.reindex(columns=range(1, 13))

        fig = go.Figure(go.Heatmap(
            z=grid.values,
            x=MONTH_NAMES,
            y=grid.index.astype(str),
            colorscale="Purples",
            colorbar=dict(title="Incidents")
        ))
        fig.update_layout(
            title=f"{series.name or 'Series'}: Month x Year",
            xaxis_title="Month",
            yaxis_title="Year",
            height=400
        )
        return fig

    def plot_seasonal_profile(self, series: pd.Series) -> go.Figure:
        """Mean per calendar month with a one standard deviation band."""
        profile = self.aggregator.seasonal_profile(series)
        x_vals = [MONTH_NAMES[m - 1] for m in profile["calendar_month"]]
        std = profile["std"].fillna(0)

        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=x_vals + x_vals[::-1],
            y=list(profile["mean"] + std) + list(profile["mean"] - std)[::-1],
            fill="toself",
            fillcolor="rgba(102, 126, 234, 0.2)",
            line=dict(color="rgba(255,255,255,0)"),
            name="±1 std"
        ))
        fig.add_trace(go.Scatter(
            x=x_vals,
            y=profile["mean"],
            mode="lines+markers",
            name="Mean",
            line=dict(color="#667eea", width=2)
        ))
        fig.update_layout(
            title=f"{series.name or 'Series'}: Average by Calendar Month",
            xaxis_title="Month",
            yaxis_title="Incidents",
            height=400
        )
        return fig

    def plot_year_over_year(self, series: pd.Series) -> go.Figure:
        """Percent change against the same month a year earlier."""
        yoy = self.aggregator.year_over_year(series).dropna()
        colors = np.where(yoy >= 0, "#ef4444", "#10b981")

        fig = go.Figure(go.Bar(x=yoy.index, y=yoy, marker_color=colors))
        fig.add_hline(y=0, line_color="#6b7280")
        fig.update_layout(
            title=f"{series.name or 'Series'}: Year-over-Year Change",
            xaxis_title="Month",
            yaxis_title="Change (%)",
            height=350,
            showlegend=False
        )
        return fig

    def overview(self, category: str) -> Dict[str, go.Figure]:
        """The standard set of exploration figures for one category."""
        series = self.aggregator.city_series(category)
        return {
            "category_totals": self.plot_category_totals(),
            "category_share": self.plot_category_share(),
            "borough_ranking": self.plot_borough_ranking(category),
            "heatmap": self.plot_month_year_heatmap(series),
            "seasonal_profile": self.plot_seasonal_profile(series),
            "year_over_year": self.plot_year_over_year(series),
        }
