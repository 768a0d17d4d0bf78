"""Configuration file schemas for simplecert."""

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "domains": {
            "type": "array",
            "items": {"type": "string", "minLength": 1},
            "description": "Domains for which to obtain the certificate",
        },
        "ssl_email": {
            "type": "string",
            "description": "Contact address registered with the CA",
        },
        "directory_url": {
            "type": "string",
            "description": "ACME directory URL",
        },
        "http_address": {
            "type": "string",
            "description": "Bind address for the HTTP-01 challenge",
        },
        "tls_address": {
            "type": "string",
            "description": "Bind address for the TLS-ALPN-01 challenge",
        },
        "dns_provider": {
            "type": "string",
            "description": "DNS provider name for DNS-01 challenges",
        },
        "renew_before": {
            "type": "integer",
            "minimum": 0,
            "description": "Hours before expiry at which to renew",
        },
        "check_interval": {
            "type": "number",
            "minimum": 0,
            "description": "Seconds between renewal checks",
        },
        "cache_dir": {
            "type": "string",
            "description": "Directory holding cert.pem, key.pem and CertResource.json",
        },
        "cache_dir_perm": {
            "oneOf": [
                {"type": "integer", "minimum": 0},
                {"type": "string", "pattern": r"^0?o?[0-7]{3,4}$"},
            ],
            "description": "UNIX permission for the cache directory",
        },
        "key_type": {
            "type": ["string", "integer"],
            "description": "P256, P384, 2048, 4096 or 8192",
        },
        "local": {"type": "boolean"},
        "update_hosts": {"type": "boolean"},
        "watch_cache_dir": {"type": "boolean"},
    },
    "additionalProperties": False,
}
