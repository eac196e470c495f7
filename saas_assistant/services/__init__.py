"""Service layer: token broker, scope resolution, date parsing and HTTP helpers."""
