# src/dfremote/methods.py
"""Declarative table of the remote procedures the client binds on connect."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

BIND_METHOD = "BindMethod"

# (plugin, namespace for the plugin's message types, {method: (input, output)})
FuncGroup = Tuple[Optional[str], str, Dict[str, Tuple[str, str]]]

# fmt: off
FUNC_DEFS: Tuple[FuncGroup, ...] = (
    (None, "dfproto", {
        "BindMethod":     ("CoreBindRequest",       "CoreBindReply"),
        "RunCommand":     ("CoreRunCommandRequest", "EmptyMessage"),
        "CoreSuspend":    ("EmptyMessage",          "IntMessage"),
        "CoreResume":     ("EmptyMessage",          "IntMessage"),
        "RunLua":         ("CoreRunLuaRequest",     "StringListMessage"),
        "GetVersion":     ("EmptyMessage",          "StringMessage"),
        "GetDFVersion":   ("EmptyMessage",          "StringMessage"),
        "GetWorldInfo":   ("EmptyMessage",          "GetWorldInfoOut"),
        "ListEnums":      ("EmptyMessage",          "ListEnumsOut"),
        "ListJobSkills":  ("EmptyMessage",          "ListJobSkillsOut"),
        "ListMaterials":  ("ListMaterialsIn",       "ListMaterialsOut"),
        "ListUnits":      ("ListUnitsIn",           "ListUnitsOut"),
        "ListSquads":     ("ListSquadsIn",          "ListSquadsOut"),
        "SetUnitLabors":  ("SetUnitLaborsIn",       "EmptyMessage"),
    }),
    ("rename", "dfproto", {
        "RenameSquad":    ("RenameSquadIn",    "EmptyMessage"),
        "RenameUnit":     ("RenameUnitIn",     "EmptyMessage"),
        "RenameBuilding": ("RenameBuildingIn", "EmptyMessage"),
    }),
    ("RemoteFortressReader", "RemoteFortressReader", {
        "GetMaterialList":        ("EmptyMessage", "MaterialList"),
        "GetGrowthList":          ("EmptyMessage", "MaterialList"),
        "GetBlockList":           ("BlockRequest", "BlockList"),
        "CheckHashes":            ("EmptyMessage", "EmptyMessage"),
        "GetTiletypeList":        ("EmptyMessage", "TiletypeList"),
        "GetPlantList":           ("BlockRequest", "PlantList"),
        "GetUnitList":            ("EmptyMessage", "UnitList"),
        "GetUnitListInside":      ("BlockRequest", "UnitList"),
        "GetViewInfo":            ("EmptyMessage", "ViewInfo"),
        "GetMapInfo":             ("EmptyMessage", "MapInfo"),
        "ResetMapHashes":         ("EmptyMessage", "EmptyMessage"),
        "GetItemList":            ("EmptyMessage", "MaterialList"),
        "GetBuildingDefList":     ("EmptyMessage", "BuildingList"),
        "GetWorldMap":            ("EmptyMessage", "WorldMap"),
        "GetWorldMapNew":         ("EmptyMessage", "WorldMap"),
        "GetRegionMaps":          ("EmptyMessage", "RegionMaps"),
        "GetRegionMapsNew":       ("EmptyMessage", "RegionMaps"),
        "GetCreatureRaws":        ("EmptyMessage", "CreatureRawList"),
        "GetPartialCreatureRaws": ("ListRequest",  "CreatureRawList"),
        "GetWorldMapCenter":      ("EmptyMessage", "WorldMap"),
        "GetPlantRaws":           ("EmptyMessage", "PlantRawList"),
        "GetPartialPlantRaws":    ("ListRequest",  "PlantRawList"),
        "CopyScreen":             ("EmptyMessage", "ScreenCapture"),
        "PassKeyboardEvent":      ("KeyboardEvent", "EmptyMessage"),
        "SendDigCommand":         ("DigCommand",   "EmptyMessage"),
        "SetPauseState":          ("SingleBool",   "EmptyMessage"),
        "GetPauseState":          ("EmptyMessage", "SingleBool"),
        "GetVersionInfo":         ("EmptyMessage", "VersionInfo"),
        "GetReports":             ("EmptyMessage", "Status"),
        "GetLanguage":            ("EmptyMessage", "Language"),
    }),
    ("RemoteFortressReader", "AdventureControl", {
        "MoveCommand":           ("MoveCommandParams", "EmptyMessage"),
        "JumpCommand":           ("MoveCommandParams", "EmptyMessage"),
        "MenuQuery":             ("EmptyMessage",      "MenuContents"),
        "MovementSelectCommand": ("IntMessage",        "EmptyMessage"),
        "MiscMoveCommand":       ("MiscMoveParams",    "EmptyMessage"),
    }),
    ("isoworldremote", "isoworldremote", {
        "GetEmbarkTile": ("TileRequest", "EmbarkTile"),
        "GetEmbarkInfo": ("MapRequest",  "MapReply"),
        "GetRawNames":   ("MapRequest",  "RawNames"),
    }),
)
# fmt: on


@dataclass(frozen=True, slots=True)
class MethodDef:
    name: str
    input_type: str
    output_type: str
    plugin: Optional[str] = None


def resolve_type_names(groups: Iterable[FuncGroup] = FUNC_DEFS) -> Dict[str, str]:
    """
    Map short type names to fully-qualified ones.

    The first group that mentions a short name decides its namespace, so
    EmptyMessage resolves to dfproto.EmptyMessage everywhere.
    """
    out: Dict[str, str] = {}
    for _plugin, namespace, methods in groups:
        for input_short, output_short in methods.values():
            for short in (input_short, output_short):
                if short not in out:
                    out[short] = f"{namespace}.{short}"
    return out


def method_defs(groups: Iterable[FuncGroup] = FUNC_DEFS) -> List[MethodDef]:
    groups = tuple(groups)
    type_names = resolve_type_names(groups)
    out: List[MethodDef] = []
    for plugin, _namespace, methods in groups:
        for name, (input_short, output_short) in methods.items():
            out.append(
                MethodDef(
                    name=name,
                    input_type=type_names[input_short],
                    output_type=type_names[output_short],
                    plugin=plugin,
                )
            )
    return out
