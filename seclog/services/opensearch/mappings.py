# Index template shared by every daily log partition (logs-*)

TEMPLATE_NAME = "logs-template"

_KEYWORD_256 = {"type": "keyword", "ignore_above": 256}

_win_perm = {
    "type": "nested",
    "properties": {
        "name": {"type": "keyword"},
        "allowed": {"type": "keyword"},
    },
}

logs_mapping = {
    "properties": {
        "@timestamp": {"type": "date"},
        "id": {"type": "keyword"},
        "error": {"type": "keyword"},
        "error_message": {"type": "text"},
        "agent": {
            "properties": {
                "name": {"type": "keyword"},
                "id": {"type": "keyword"},
                # Malformed values are ignored instead of rejecting the document.
                "ip": {"type": "ip", "ignore_malformed": True},
            }
        },
        "rule": {
            "properties": {
                "id": {"type": "keyword"},
                "level": {"type": "integer"},
                "description": {"type": "text", "fields": {"keyword": _KEYWORD_256}},
                "groups": {"type": "keyword"},
                "mitre": {
                    "properties": {
                        "id": {"type": "keyword"},
                        "tactic": {"type": "keyword"},
                        "technique": {"type": "keyword"},
                    }
                },
                "gdpr": {"type": "keyword"},
                "hipaa": {"type": "keyword"},
                "gpg13": {"type": "keyword"},
                "nist": {"type": "keyword"},
                "pci_dss": {"type": "keyword"},
                "tsc": {"type": "keyword"},
            }
        },
        "network": {
            "properties": {
                "srcIp": {"type": "ip", "ignore_malformed": True},
                "destIp": {"type": "ip", "ignore_malformed": True},
                "protocol": {"type": "keyword"},
                "srcPort": {"type": "integer"},
                "destPort": {"type": "integer"},
                "flow": {
                    "properties": {
                        "state": {"type": "keyword"},
                        "pktsToServer": {"type": "long"},
                        "bytesToServer": {"type": "long"},
                        "pktsToClient": {"type": "long"},
                        "bytesToClient": {"type": "long"},
                    }
                },
            }
        },
        # Open schema: vendor fields are mapped dynamically.
        "data": {
            "type": "object",
            "properties": {
                "win": {"type": "object"},
                "action": {"type": "keyword"},
                "app": {"type": "keyword"},
                "appcat": {"type": "keyword"},
            },
        },
        "syscheck": {
            "type": "object",
            "properties": {
                "path": {"type": "keyword"},
                "mode": {"type": "keyword"},
                "size_after": {"type": "keyword"},
                "size_before": {"type": "keyword"},
                "uid_after": {"type": "keyword"},
                "uid_before": {"type": "keyword"},
                "gid_after": {"type": "keyword"},
                "gid_before": {"type": "keyword"},
                "md5_after": {"type": "keyword"},
                "md5_before": {"type": "keyword"},
                "sha1_after": {"type": "keyword"},
                "sha1_before": {"type": "keyword"},
                "sha256_after": {"type": "keyword"},
                "sha256_before": {"type": "keyword"},
                "uname_after": {"type": "keyword"},
                "uname_before": {"type": "keyword"},
                "mtime_after": {"type": "date"},
                "mtime_before": {"type": "date"},
                "changed_attributes": {"type": "keyword"},
                "event": {"type": "keyword"},
                "diff": {"type": "text"},
                "attrs_after": {"type": "keyword"},
                "attrs_before": {"type": "keyword"},
                "win_perm_after": _win_perm,
                "win_perm_before": _win_perm,
                "audit": {
                    "properties": {
                        "user": {"properties": {"id": {"type": "keyword"}, "name": {"type": "keyword"}}},
                        "process": {"properties": {"id": {"type": "keyword"}, "name": {"type": "keyword"}}},
                    }
                },
            },
        },
        "ai_ml_logs": {
            "type": "object",
            "properties": {
                "timestamp": {"type": "date"},
                "log_analysis": {"type": "keyword"},
                "anomaly_detected": {"type": "boolean"},
                "anomaly_score": {"type": "integer"},
                "original_log_id": {"type": "keyword"},
                "original_source": {"type": "keyword"},
                "analysis_timestamp": {"type": "date"},
                "correlation": {
                    "properties": {
                        "source": {"type": "keyword"},
                        "destination": {"type": "keyword"},
                        "path": {"type": "keyword"},
                        "description": {"type": "text"},
                    }
                },
                "log_summary": {"type": "text"},
                "categories": {
                    "properties": {
                        "score_category": {"type": "keyword"},
                        "severity_category": {"type": "keyword"},
                        "combined_risk": {"type": "keyword"},
                    }
                },
                "hybrid_score": {"type": "float"},
                "anomaly_reason": {"type": "text"},
                "cluster_info": {
                    "properties": {
                        "cluster_id": {"type": "integer"},
                        "is_outlier": {"type": "boolean"},
                        "is_in_small_cluster": {"type": "boolean"},
                    }
                },
                "score_explanation": {"type": "object", "enabled": False},
            },
        },
        # Kept in _source for replay. Only raw_log.message is indexed.
        "raw_log": {
            "type": "object",
            "dynamic": False,
            "properties": {
                "message": {"type": "text", "fields": {"keyword": _KEYWORD_256}},
            },
        },
    },
}

logs_settings = {
    "index.refresh_interval": "5s",
    "index.number_of_shards": 1,
    "index.number_of_replicas": 0,
    "index.mapping.total_fields.limit": 2000,
}


def logs_template_body(index_pattern: str) -> dict:
    return {
        "index_patterns": [index_pattern],
        "template": {
            "settings": logs_settings,
            "mappings": logs_mapping,
        },
    }
