import jinja2


#: change summary when the names of the purged services should be shown
VERBOSE_SUMMARY_TEMPLATE = jinja2.Template(
    """Purged Services: '{{ services | join("', '") }}'"""
)

#: change summary that only reports how many services were purged
SUMMARY_TEMPLATE = jinja2.Template("""Purged '{{ services | length }}' Services""")
