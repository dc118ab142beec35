"""
Equity Forecast Test Suite

- test_series.py: series store invariants and chronological split
- test_models.py: fitter contract, factory, statsforecast backends (slow)
- test_forecasting.py: horizon contract and interval nesting
- test_evaluation.py: metric definitions and NaN masking
- test_cross_validation.py: rolling-origin CV, SkipStep, thread pool
- test_diagnostics.py: summary statistics, ADF/KPSS, Ljung-Box, STL
- test_config.py / test_market_data.py: configuration and data collaborator
- test_pipeline.py / test_cli.py: smoke tests on synthetic closes
"""
