"""Nominal marker base class for Pydantic domain models.

``DomainModel`` is shared by the Code Assist wire models, the persisted
credential record and the application configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class DomainModel(BaseModel):
    """Nominal marker for Pydantic-based domain and API models."""

    model_config = ConfigDict(populate_by_name=True)

    def __repr__(self) -> str:
        """Provide a concise, one-line summary of the object."""
        class_name = self.__class__.__name__

        # Common identifiers are 'id', 'name' or 'model'
        for attr in ("id", "name", "model"):
            attr_value = getattr(self, attr, None)
            if isinstance(attr_value, str):
                return f'<{class_name} {attr}="{attr_value}">'

        return f"<{class_name}>"
