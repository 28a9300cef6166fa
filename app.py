import solara as sl
from mesa.visualization import SolaraViz, make_space_component, make_plot_component, Slider
from coords import Orientation
from model import CityModel

ORIENTATION_COLOURS = {
    Orientation.NORTH: "#ff3232",
    Orientation.SOUTH: "#32ff32",
    Orientation.EAST: "#9696ff",
    Orientation.WEST: "#ffff32",
}
PARKED_COLOUR = "#a5a5a5"


def robot_portrayal(agent):
    """
    Determine visualisation settings for each robot in the GUI.

    Robots standing in a parking bay are grey; moving robots are coloured
    by heading:
      - North -> Red
      - South -> Green
      - East -> Blue
      - West -> Yellow
    """
    cell = agent.model.streets.cell(agent.coords.xy)
    if cell.is_parking:
        colour = PARKED_COLOUR
    else:
        colour = ORIENTATION_COLOURS[agent.coords.orientation]
    return {"color": colour, "size": 20}

# Build the grid-drawing component once:
space = make_space_component(robot_portrayal)

# Create a plot component for the metrics:
plot = make_plot_component(
    ["moves", "blocked", "arrivals", "largest_component"],
    backend="matplotlib"
)

@sl.component
def ExportButton(model):
    """
    A simple button that, when clicked, will pull the current
    DataCollector dataframe off the model and write it out as CSV.
    """
    sl.Button(
        "Export CSV",
        on_click=lambda: model.datacollector
                             .get_model_vars_dataframe()
                             .to_csv("results.csv", index=False),
    )


@sl.component
def Page():
    """
    - Creates a reactive model instance so .grid is always present.
    - Renders the robots on the city grid. Streets themselves are not
      drawn; parked robots show grey, moving ones by heading.
    - Use Reset/Step/Play to watch them commute between bays.
    """
    model_inst = CityModel(width_blocks = 6,
                           height_blocks = 5,
                           block_size = 8,
                           robot_density = 0.5,
                           horizon = 5,
                           max_steps = 1000)

    # Wrap it in Solara's reactive system:
    reactive_model = sl.reactive(model_inst)

    # Slider Logic:
    model_params = {
        "width_blocks": Slider("Block columns", 6, 3, 12, step = 1),
        "height_blocks": Slider("Block rows", 5, 3, 12, step = 1),
        "block_size": Slider("Block size", 8, 6, 16, step = 1),
        "robot_density": Slider("Robot density", 0.5, 0.1, 1.0, step = 0.1),
        "horizon": Slider("Planning horizon", 5, 1, 10, step = 1),
        "policy": {
            "type": "Select",
            "value": "replan",
            "values": ["replan", "random"],
            "label": "Robot policy"
        },
    }

    return SolaraViz(
        reactive_model,
        [space, plot, ExportButton],
        model_params = model_params,
        name="Street Robots",
        play_interval=25
    )
