# deeprisk

Building blocks for deep-learning risk models and tools to evaluate
portfolios built from them, written on top of NumPy.

## What is inside

- `deeprisk.nn.gru.GRUModule(input_size, hidden_size)` – a gated recurrent
  unit. `forward(x)` runs one step from a zero hidden state over a batch of
  rows of shape `(batch, input_size)` and returns `(batch, hidden_size)`.
  `init_weights()` resets the weights to 0.1 and the biases to zero.
- `deeprisk.nn.gat.GATModule(in_features, out_features, n_heads, dropout)` –
  multi-head graph attention. `forward(x, adj)` takes node features of shape
  `(n_nodes, in_features)` and an adjacency matrix `(n_nodes, n_nodes)`;
  pairs with a positive adjacency entry are scored, scores are normalised per
  row, and the heads are averaged. Dropout outside `[0, 1]` is rejected; a
  positive dropout rate is applied on every call.
- `deeprisk.nn.transformer.utils` – `xavier_init(shape)` draws a 2-D float32
  matrix from a normal distribution with standard deviation
  `sqrt(6 / (fan_in + fan_out))`; `compute_attention(query, key, value, d_k)`
  is softmax scaled dot-product attention over
  `(batch, heads, seq_len, dim)` tensors.
- `deeprisk.optimization.quantization` – `Quantizer`, `QuantizationConfig`,
  `QuantizationPrecision`, `QuantizedTensor` and the abstract `Quantizable`
  interface. Int8 quantization is symmetric or asymmetric, per channel
  (per column) or per tensor; float32 is stored as little-endian bytes.
  Int16 and float16 raise `UnsupportedOperationError`.
- `deeprisk.optimization.memory_opt` –
  - `MemoryConfig`: chunk size, checkpoint segments and related switches;
  - `SparseTensor.from_dense(tensor, threshold)` with `to_dense()`, `dot(rhs)`
    and `memory_usage()`;
  - `ChunkedProcessor(config, total_samples)` with
    `process_in_chunks(data, processor)` and `progress()`;
  - `GradientCheckpointer(config)` with
    `process_sequence(data, processor, combine)`, which splits the rows into
    segments when checkpointing is on and merges the results with `combine`;
  - `MemoryMappedArray(path, shape, element_size)`: a 2-D little-endian float32
    array in a file, with `read_slice(start, end)` and
    `write_slice(start, data)`;
  - `MemoryPool(max_memory)`: `allocate(shape)`, `release(tensor)`, `clear()`
    and `memory_usage()`. Released matrices of the same shape are reused.
- `deeprisk.optimization.backtest` –
  - `MarketData(returns, features)`: one row per period;
  - `Backtest(train_window, test_window, rebalance_freq, risk_aversion)`:
    `run(model, data)` walks forward over the data, retrains the model on a
    rolling window every `rebalance_freq` periods and weights assets by
    inverse volatility (`optimize_portfolio(covariance)`);
    `run_scenario(model, base_data, scenario_generator)` backtests the base
    data and every generated scenario;
  - `BacktestResults`: returns, volatility, Sharpe ratio, maximum drawdown,
    regime transitions and per-regime `RegimeStats`, with
    `cumulative_return()`, `annualized_return()` (252 periods a year),
    `summary()` and `print_summary()`;
  - `max_drawdown(returns)`;
  - `ScenarioGenerator` (abstract), `HistoricalScenarioGenerator(periods)` and
    `StressScenarioGenerator(volatility_multipliers, correlation_shifts,
    return_shocks)`.

Errors are raised as subclasses of `deeprisk.errors.ModelError`:
`InvalidDimensionError`, `InvalidInputError`, `DimensionMismatchError`,
`NumericalError` and `UnsupportedOperationError`.

## Installation

```
pip install deeprisk
```

## Examples

Graph attention across assets:

```python
import numpy as np
from deeprisk.nn.gat import GATModule

gat = GATModule(64, 32, 4, 0.1)
features = np.zeros((100, 64))
adjacency = np.ones((100, 100))
print(gat.forward(features, adjacency).shape)  # (100, 32)
```

A GRU step over a batch:

```python
import numpy as np
from deeprisk.nn.gru import GRUModule

gru = GRUModule(10, 20)
print(gru.forward(np.zeros((5, 10))).shape)  # (5, 20)
```

Quantizing a weight matrix to int8 and back:

```python
import numpy as np
from deeprisk.optimization.quantization import QuantizationConfig, Quantizer

quantizer = Quantizer(QuantizationConfig(per_channel_quantization=False))
weights = np.random.uniform(-1, 1, size=(10, 5))
restored = quantizer.quantize_tensor(weights).dequantize()
```

Processing rows in chunks:

```python
import numpy as np
from deeprisk.optimization.memory_opt import ChunkedProcessor, MemoryConfig

processor = ChunkedProcessor(MemoryConfig(chunk_size=30), 100)
print(processor.process_in_chunks(np.ones((100, 10)), lambda chunk: chunk.sum()))
# [300.0, 300.0, 300.0, 100.0]
```

A backtest with a risk model you supply. The model needs `train(data)`,
`estimate_covariance(data)` returning an `(n_assets, n_assets)` matrix, and
`current_regime()` returning a hashable regime label or `None`:

```python
import numpy as np
from deeprisk.optimization.backtest import Backtest, MarketData

class SampleCovarianceModel:
    def train(self, data):
        pass

    def estimate_covariance(self, data):
        return np.cov(data.returns, rowvar=False)

    def current_regime(self):
        return None

rng = np.random.default_rng(0)
data = MarketData(rng.normal(0.001, 0.02, (200, 5)), rng.normal(size=(200, 10)))
results = Backtest(50, 50, 10, 1.0).run(SampleCovarianceModel(), data)
print(len(results.returns))  # 150
results.print_summary()
```

Stress scenarios from market data:

```python
import numpy as np
from deeprisk.optimization.backtest import MarketData, StressScenarioGenerator

data = MarketData(np.random.normal(0.001, 0.02, (100, 5)),
                  np.random.normal(size=(100, 10)))
generator = StressScenarioGenerator(
    [("High", 2.0)], [("High", 0.8)], [("Negative", -0.01)]
)
for name, scenario in generator.generate_scenarios(data):
    print(name, scenario.returns.shape)  # Vol_High, Corr_High, Shock_Negative
```

## What the package does not do

- It ships no risk model of its own: `Backtest` drives a model object that
  you provide.
- `deeprisk.nn.transformer` holds only the `xavier_init` and
  `compute_attention` helpers; there are no transformer layers, encoders or
  complete transformer models.
- There is no training loop or gradient computation; the networks run
  forward passes only.
- There is no command-line program.

## Running the tests

```
pip install -e ".[test]"
pytest
```