"""Application, domain and event layers behind the editor shell."""
