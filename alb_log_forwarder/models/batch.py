"""
Pydantic models for Loki push batches
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class BatchEntry(BaseModel):
    """One timestamped log line within a stream"""
    timestamp_ns: int = Field(..., ge=0, description="Nanoseconds since the Unix epoch")
    line: str

    def to_value(self) -> List[str]:
        # Loki expects the timestamp as a string
        return [str(self.timestamp_ns), self.line]


class IngestionBatch(BaseModel):
    """A set of entries sharing one label set, submitted in a single push request"""
    stream_labels: Dict[str, str] = Field(..., description="Labels identifying the Loki stream")
    entries: List[BatchEntry] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def to_push_payload(self) -> Dict[str, Any]:
        """
        Render the JSON body for the Loki push API

        Returns:
            Dictionary of the form {"streams": [{"stream": {...}, "values": [[ts, line], ...]}]}
        """
        return {
            'streams': [
                {
                    'stream': dict(self.stream_labels),
                    'values': [entry.to_value() for entry in self.entries],
                }
            ]
        }
