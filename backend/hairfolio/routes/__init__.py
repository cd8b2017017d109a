"""
Hairfolio Backend: API Routes Package
======================================

Route Inventory:
    - designers.py:  /api/designers/...              records, portfolio, settings, backup
    - tryon.py:      /api/designers/{id}/try-on      try-on pipeline, bookings
    - color_tryon.py: /api/designers/{id}/color-try-on  hair colour try-on
    - analytics.py:  /api/designers/{id}/analytics   summary, reset
    - files.py:      /api/files/{path}               stored images
    - session.py:    /api/session                    end browsing session
    - health.py:     /health                         service health

Routes handle HTTP concerns only; logic lives in services.
"""
