"""Invoice Field Extraction.

Turns raw OCR output for a document page into ranked, de-duplicated,
typed invoice fields with confidence and source bounding boxes, and
serializes page rendering for previews and OCR through a single queue.
"""
