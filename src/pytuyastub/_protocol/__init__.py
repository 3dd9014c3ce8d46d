"""Wire-level building blocks: 55AA frames and the 3.1 payload envelope."""
