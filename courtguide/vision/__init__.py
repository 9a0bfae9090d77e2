"""Per-frame vision stages: preprocessing, edges, Hough lines, classification."""
