"""Neural network components: GRU, graph attention and transformer helpers."""