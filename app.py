import re

import streamlit as st
import streamlit.components.v1 as components

import pattern_core
import pattern_export
import pattern_project

st.set_page_config(page_title="Tile Pattern Export", layout="wide")
st.title("Tile Pattern Export")

with st.sidebar:
    st.header("Project")

    source = st.radio("Source", ["Preset", "Project file"], index=0)
    if source == "Preset":
        preset_names = [p['name'] for p in pattern_project.PRESET_GALLERY]
        preset_index = st.selectbox("Preset", range(len(preset_names)),
                                    format_func=lambda i: preset_names[i])
        preset = pattern_project.PRESET_GALLERY[preset_index]
        st.caption(preset['description'])
        project, loaded_pattern = pattern_project.get_preset(preset['id'])
    else:
        uploaded = st.file_uploader("Project JSON", type=["json"])
        project, loaded_pattern = None, None
        if uploaded is not None:
            try:
                project, loaded_pattern = pattern_project.deserialize_project(
                    uploaded.getvalue().decode("utf-8"))
            except ValueError as exc:
                st.error(str(exc))

    st.header("Tile")
    if project is not None:
        shape = st.selectbox("Tile Shape", list(pattern_core.TILE_SHAPES),
                             index=pattern_core.TILE_SHAPES.index(project['tile']['shape']),
                             help="Changing the shape clears the drawn geometry")
        project = pattern_project.set_tile_shape(project, shape)

    st.header("Pattern")
    default_cols = loaded_pattern['columns'] if loaded_pattern else 4
    default_rows = loaded_pattern['rows'] if loaded_pattern else 3
    columns = st.slider("Columns", 1, 20, default_cols)
    rows = st.slider("Rows", 1, 20, default_rows)

    st.header("Export Settings")
    use_background = st.checkbox("Background", value=False)
    background = st.color_picker("Background Colour", "#ffffff") if use_background else None
    join_lines = st.checkbox("Join line paths (plotter)", value=True,
                             help="Merge touching same-style lines to cut pen lifts")
    margin = st.slider("Margin", 0.0, 1.0, 0.2, 0.05, help="Fraction of the tile size")

    st.header("View Settings")
    view = st.radio("View", ["Plotter export", "Preview"], index=0)
    zoom_level = st.slider("Zoom", 25, 200, 100, 5, help="Zoom level (100% = fit to window)")

if project is None:
    st.info("Upload a project file or pick a preset.")
else:
    pattern = pattern_project.make_pattern_size(columns, rows)
    params = {'join_lines': join_lines, 'margin': margin}

    export_svg = pattern_export.build_tiled_svg(project, pattern, background=background,
                                                params=params)
    if view == "Preview":
        svg_string = pattern_export.build_preview_svg(project, pattern, background=background,
                                                      params=params)
    else:
        svg_string = export_svg

    # Make SVG responsive for display
    display_svg = re.sub(r'width="[\d.]+"', 'width="100%"', svg_string, count=1)
    display_svg = re.sub(r'height="[\d.]+"', 'height="100%"', display_svg, count=1)

    svg_size = zoom_level

    html_content = f'''
    <div style="background:#f0f0f0; height:100%; display:flex; align-items:center;
                justify-content:center; overflow:auto; padding:20px; box-sizing:border-box;">
        <div style="background:white; padding:10px; box-shadow: 0 2px 8px rgba(0,0,0,0.1);">
            <div style="width:{svg_size}vmin; height:{svg_size}vmin;">
                {display_svg}
            </div>
        </div>
    </div>
    '''
    components.html(html_content, height=700, scrolling=True)

    col_a, col_b, col_c = st.columns(3)
    col_a.download_button(
        "Download Pattern SVG",
        export_svg,
        file_name="pattern.svg",
        mime="image/svg+xml"
    )
    col_b.download_button(
        "Download Tile SVG",
        pattern_export.build_single_tile_svg(project, background=background, params=params),
        file_name="tile.svg",
        mime="image/svg+xml"
    )
    col_c.download_button(
        "Download Project JSON",
        pattern_project.serialize_project(project, pattern),
        file_name="pattern-project.json",
        mime="application/json"
    )
