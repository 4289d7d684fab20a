from core import (
    get_theme,
    apply_theme_css,
    get_table,
    get_filtered_data,
    show_data_explorer,
)

theme = get_theme(False)
apply_theme_css(theme)

table = get_table()
df = get_filtered_data(table)

show_data_explorer(df)
