"""Neural building blocks, quantization, memory tools and portfolio backtesting."""

__version__ = "0.1.0"