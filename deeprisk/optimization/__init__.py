"""Quantization, memory optimisation and backtesting utilities."""