"""
Canvas Chat backend package.

A chat assistant that explains things in text and draws them on a shared
Excalidraw canvas at the same time. The package contains:

1. A stream demultiplexer that splits the model's token stream into
   narration and drawing batches
2. An element canonicalizer that expands terse drawing specs into
   render-ready scene objects
3. A reconnecting WebSocket transport and a scene accumulator for clients
"""

__version__ = "0.1.0"
