"""Per-session narrative state: models, mutations and the PlotState manager."""
