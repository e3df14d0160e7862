"""notify/ -- Best-effort outbound notifications. Imports only from core/."""
