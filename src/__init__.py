"""
Equity Forecast - ARIMA vs ETS evaluation of daily closing prices

Modules:
- equity_forecast: Series store, model fitters, forecasting, accuracy,
  rolling-origin CV, diagnostics, reporting, pipeline and Typer CLI
"""
