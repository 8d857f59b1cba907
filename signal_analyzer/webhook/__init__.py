"""HTTP surface: signal webhooks, historical uploads, analysis and export."""
