"""Transformer helpers: Xavier initialisation and scaled dot-product attention."""