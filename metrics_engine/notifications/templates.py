"""Alert email rendering."""

import html
from string import Template

from metrics_engine.models.alert_instance import AlertInstance
from metrics_engine.models.alert_rule import AlertRule

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

SEVERITY_COLORS = {
    'critical': '#dc3545',
    'warning': '#fd7e14',
    'info': '#28a745',
}

ALERT_EMAIL_TEMPLATE = Template("""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body { font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }
        .container { max-width: 600px; margin: 0 auto; background-color: white; border-radius: 8px; overflow: hidden; }
        .header { background-color: $severity_color; color: white; padding: 20px; text-align: center; }
        .content { padding: 20px; }
        .metric-info { background-color: #f8f9fa; padding: 15px; border-radius: 4px; margin: 15px 0; border-left: 4px solid $severity_color; }
        .footer { background-color: #6c757d; color: white; padding: 15px; text-align: center; font-size: 12px; }
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h2>&#128680; $severity_title Alert</h2>
            <h3>$rule_name</h3>
        </div>
        <div class="content">
            <p><strong>Alert Message:</strong></p>
            <p>$message</p>
            <div class="metric-info">
                <h4>Metric Details</h4>
                <p><strong>Metric:</strong> $metric_name</p>
                <p><strong>Current Value:</strong> $current_value</p>
                <p><strong>Threshold:</strong> $threshold</p>
                <p><strong>Condition:</strong> $condition</p>
                <p><strong>Triggered At:</strong> $triggered_at</p>
            </div>
            <p><em>This alert was generated by the $product monitoring system.</em></p>
        </div>
        <div class="footer">$product Alert System</div>
    </div>
</body>
</html>
""")


def email_subject(rule: AlertRule, product: str) -> str:
    """Subject line, e.g. '[CRITICAL] Metrics Engine Alert: High CPU'."""
    return f'[{rule.severity.upper()}] {product} Alert: {rule.name}'


def render_alert_email(instance: AlertInstance, rule: AlertRule, product: str) -> str:
    """Render the HTML body of an alert email.

    Every interpolated value is HTML-escaped.

    Args:
        instance: Triggered alert
        rule: Rule that fired
        product: Product name shown in the footer

    Returns:
        HTML document
    """
    values = {
        'severity_color': SEVERITY_COLORS.get(rule.severity, SEVERITY_COLORS['warning']),
        'severity_title': rule.severity.title(),
        'rule_name': rule.name,
        'message': instance.message,
        'metric_name': rule.metric_name,
        'current_value': f'{instance.current_value:.2f}',
        'threshold': f'{instance.threshold_value:.2f}',
        'condition': rule.condition,
        'triggered_at': instance.triggered_at.strftime(TIMESTAMP_FORMAT) if instance.triggered_at else '',
        'product': product,
    }
    return ALERT_EMAIL_TEMPLATE.substitute({key: html.escape(str(value)) for key, value in values.items()})
